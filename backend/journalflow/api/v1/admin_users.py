import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from journalflow.core.errors import Conflict, InvalidTransition
from journalflow.core.roles import get_user_directory, require_any_role
from journalflow.models.user import Role, UserProfile
from journalflow.schemas.users import AdminUserCreate, AdminUserUpdate, RoleUpdate
from journalflow.services.user_directory import UserDirectory

router = APIRouter(prefix="/admin/users", tags=["Admin User Management"])
admin_only = require_any_role([Role.ADMIN])

logger = logging.getLogger("journalflow.users")


def _guard_self_demotion(admin: UserProfile, user_id: str, new_role: Optional[Role]) -> None:
    # 管理员不能移除自己的 admin 角色（避免系统失去最后一个管理员）
    if user_id == admin.id and new_role is not None and new_role != Role.ADMIN:
        raise InvalidTransition("Cannot remove your own admin role")


@router.get("", response_model=list[UserProfile])
async def list_users(
    role: Optional[Role] = Query(None, description="按角色过滤"),
    q: Optional[str] = Query(None, max_length=100, description="匹配 email / 姓名"),
    _admin: UserProfile = Depends(admin_only),
    directory: UserDirectory = Depends(get_user_directory),
):
    """全部用户（管理端）"""
    return directory.list_all(role=role, search=q)


@router.post("", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: AdminUserCreate,
    admin: UserProfile = Depends(admin_only),
    directory: UserDirectory = Depends(get_user_directory),
):
    if directory.find(body.id) is not None:
        raise Conflict(f"User {body.id} already exists")
    profile = directory.create(
        user_id=body.id,
        email=body.email.strip().lower(),
        role=body.role,
        full_name=body.full_name,
        affiliation=body.affiliation,
    )
    logger.info("[admin] %s created user %s as %s", admin.id, profile.id, profile.role.value)
    return profile


@router.put("/{user_id}", response_model=UserProfile)
async def update_user(
    user_id: str,
    body: AdminUserUpdate,
    admin: UserProfile = Depends(admin_only),
    directory: UserDirectory = Depends(get_user_directory),
):
    """修改角色 / 姓名 / 机构"""
    current = directory.get(user_id)
    fields = body.model_dump(exclude_unset=True)
    if "role" in fields and fields["role"] is None:
        # role 不可置空
        del fields["role"]
    if not fields:
        return current
    _guard_self_demotion(admin, user_id, body.role)
    updated = directory.update(user_id, fields)
    if updated.role != current.role:
        logger.info(
            "[admin] %s changed role of %s: %s -> %s", admin.id, user_id, current.role.value, updated.role.value
        )
    return updated


@router.put("/{user_id}/role", response_model=UserProfile)
async def update_user_role(
    user_id: str,
    body: RoleUpdate,
    admin: UserProfile = Depends(admin_only),
    directory: UserDirectory = Depends(get_user_directory),
):
    current = directory.get(user_id)
    _guard_self_demotion(admin, user_id, body.role)
    if current.role != body.role:
        directory.set_role(user_id, body.role)
        logger.info(
            "[admin] %s changed role of %s: %s -> %s", admin.id, user_id, current.role.value, body.role.value
        )
    return current.model_copy(update={"role": body.role})


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    admin: UserProfile = Depends(admin_only),
    directory: UserDirectory = Depends(get_user_directory),
):
    """
    删除用户资料。

    中文注释: 只删 user_profiles；该用户再次登录时会按默认角色重新建档。
    """
    if user_id == admin.id:
        raise InvalidTransition("Cannot delete your own account")
    directory.get(user_id)
    directory.delete(user_id)
    logger.info("[admin] %s deleted user %s", admin.id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
