from typing import Callable, Iterable, Optional

from fastapi import Depends

from journalflow.core.auth_utils import get_current_user
from journalflow.core.config import get_admin_emails
from journalflow.core.errors import Unauthorized
from journalflow.models.user import Role, UserProfile, normalize_role
from journalflow.services.user_directory import UserDirectory


def _is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in get_admin_emails()


def get_user_directory() -> UserDirectory:
    return UserDirectory()


async def get_current_profile(
    current_user: dict = Depends(get_current_user),
    directory: UserDirectory = Depends(get_user_directory),
) -> UserProfile:
    """
    获取当前用户的 profile（单角色）。

    中文注释:
    1) 首次访问时自动创建 user_profiles 记录，默认 role=author。
    2) 若 email 在 ADMIN_EMAILS 中，则提升为 admin，便于本地/演示测试。
    3) 存储不可用时抛出 TransportError，不做降级（角色未知时不能放行任何工作流操作）。
    """
    user_id = current_user["id"]
    email = current_user.get("email")
    wants_admin = _is_admin_email(email)

    profile = directory.find(user_id)
    if profile is None:
        return directory.create(user_id=user_id, email=email, role=Role.ADMIN if wants_admin else Role.AUTHOR)

    if wants_admin and profile.role != Role.ADMIN:
        directory.set_role(user_id, Role.ADMIN)
        profile = profile.model_copy(update={"role": Role.ADMIN})
    return profile


def require_any_role(required: Iterable[Role | str]) -> Callable[..., UserProfile]:
    required_set = {r if isinstance(r, Role) else normalize_role(r) for r in required}
    required_set.discard(None)

    async def _dep(profile: UserProfile = Depends(get_current_profile)) -> UserProfile:
        if profile.role not in required_set:
            allowed = ", ".join(sorted(r.value for r in required_set))
            raise Unauthorized(f"Role '{profile.role.value}' is not allowed here; required one of: {allowed}")
        return profile

    return _dep
