from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from journalflow.models.user import Role


class AdminUserCreate(BaseModel):
    """
    管理员登记用户资料。

    中文注释: 登录账号由 Supabase Auth 管理，这里只写 user_profiles（id 与 auth.users.id 一致）。
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=3, max_length=320)
    full_name: Optional[str] = Field(None, max_length=200)
    affiliation: Optional[str] = Field(None, max_length=300)
    role: Role = Role.AUTHOR


class AdminUserUpdate(BaseModel):
    """只更新传入的字段"""

    model_config = ConfigDict(extra="forbid")

    role: Optional[Role] = None
    full_name: Optional[str] = Field(None, max_length=200)
    affiliation: Optional[str] = Field(None, max_length=300)


class RoleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Role
