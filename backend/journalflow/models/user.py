from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    """
    单角色模型：每个用户只有一个角色。
    """

    ADMIN = "admin"
    EDITOR = "editor"
    REVIEWER = "reviewer"
    AUTHOR = "author"
    READER = "reader"
    COPYEDITOR = "copyeditor"
    PUBLISHER = "publisher"


def normalize_role(value: str | None) -> Role | None:
    v = str(value or "").strip().lower()
    if not v:
        return None
    # 兼容前端历史写法（CopyEditor / copy_editor）
    v = v.replace("_", "").replace("-", "")
    try:
        return Role(v)
    except ValueError:
        return None


class UserProfile(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Role = Role.AUTHOR
    affiliation: Optional[str] = None

    @property
    def is_editorial(self) -> bool:
        return self.role in {Role.EDITOR, Role.ADMIN}


class UserSummary(BaseModel):
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Role
    affiliation: Optional[str] = Field(None, description="机构（用于编辑挑选审稿人）")
