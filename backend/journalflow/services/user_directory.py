from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from journalflow.core.errors import NotFound, TransportError
from journalflow.lib.api_client import supabase_admin
from journalflow.models.user import Role, UserProfile, UserSummary, normalize_role
from journalflow.services.submission_store import extract_rows

logger = logging.getLogger("journalflow.users")

PROFILES_TABLE = "user_profiles"


def _to_profile(row: dict[str, Any]) -> UserProfile:
    data = dict(row)
    data["role"] = normalize_role(data.get("role")) or Role.AUTHOR
    return UserProfile.model_validate(data)


class UserDirectory:
    """
    用户资料查询（user_profiles 表）。

    中文注释: 供指派校验使用（被指派人的角色必须与目标角色一致），以及编辑挑选候选人列表。
    """

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    def _execute(self, query: Any, *, action: str) -> Any:
        try:
            return query.execute()
        except Exception as e:
            logger.error("[UserDirectory] %s failed: %s", action, e, exc_info=True)
            raise TransportError(f"Persistence service unavailable while trying to {action}") from e

    def find(self, user_id: str) -> Optional[UserProfile]:
        resp = self._execute(
            self.client.table(PROFILES_TABLE).select("*").eq("id", user_id).limit(1),
            action="load user profile",
        )
        rows = extract_rows(resp)
        return _to_profile(rows[0]) if rows else None

    def get(self, user_id: str) -> UserProfile:
        profile = self.find(user_id)
        if profile is None:
            raise NotFound(f"User {user_id} not found")
        return profile

    def get_many(self, user_ids: Iterable[str]) -> dict[str, UserProfile]:
        ids = sorted({str(x).strip() for x in user_ids if str(x).strip()})
        if not ids:
            return {}
        resp = self._execute(
            self.client.table(PROFILES_TABLE).select("*").in_("id", ids),
            action="load user profiles",
        )
        return {str(row.get("id")): _to_profile(row) for row in extract_rows(resp)}

    def list_by_role(self, role: Role) -> list[UserSummary]:
        resp = self._execute(
            self.client.table(PROFILES_TABLE).select("*").eq("role", role.value),
            action="list users by role",
        )
        out: list[UserSummary] = []
        for row in extract_rows(resp):
            profile = _to_profile(row)
            out.append(
                UserSummary(
                    id=profile.id,
                    full_name=profile.full_name,
                    email=profile.email,
                    role=profile.role,
                    affiliation=profile.affiliation,
                )
            )
        out.sort(key=lambda u: (u.full_name or u.email or u.id).lower())
        return out

    def list_all(self, *, role: Optional[Role] = None, search: Optional[str] = None) -> list[UserProfile]:
        """
        管理端用户列表。

        中文注释: 按角色过滤走数据库；关键字在 email / full_name 上做不区分大小写的包含匹配。
        """
        query = self.client.table(PROFILES_TABLE).select("*")
        if role is not None:
            query = query.eq("role", role.value)
        profiles = [_to_profile(row) for row in extract_rows(self._execute(query, action="list users"))]
        needle = (search or "").strip().lower()
        if needle:
            profiles = [
                p for p in profiles if needle in (p.email or "").lower() or needle in (p.full_name or "").lower()
            ]
        profiles.sort(key=lambda p: (p.email or p.id).lower())
        return profiles

    def create(
        self,
        *,
        user_id: str,
        email: Optional[str],
        role: Role,
        full_name: Optional[str] = None,
        affiliation: Optional[str] = None,
    ) -> UserProfile:
        row: dict[str, Any] = {"id": user_id, "email": email, "role": role.value}
        if full_name is not None:
            row["full_name"] = full_name
        if affiliation is not None:
            row["affiliation"] = affiliation
        resp = self._execute(
            self.client.table(PROFILES_TABLE).insert(row),
            action="create user profile",
        )
        rows = extract_rows(resp)
        return _to_profile(rows[0]) if rows else UserProfile.model_validate(row)

    def set_role(self, user_id: str, role: Role) -> None:
        self._execute(
            self.client.table(PROFILES_TABLE).update({"role": role.value}).eq("id", user_id),
            action="update user role",
        )

    def update(self, user_id: str, fields: dict[str, Any]) -> UserProfile:
        data = dict(fields)
        if isinstance(data.get("role"), Role):
            data["role"] = data["role"].value
        resp = self._execute(
            self.client.table(PROFILES_TABLE).update(data).eq("id", user_id),
            action="update user profile",
        )
        rows = extract_rows(resp)
        if not rows:
            raise NotFound(f"User {user_id} not found")
        return _to_profile(rows[0])

    def delete(self, user_id: str) -> None:
        self._execute(
            self.client.table(PROFILES_TABLE).delete().eq("id", user_id),
            action="delete user profile",
        )
