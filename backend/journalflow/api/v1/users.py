from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from journalflow.core.role_matrix import allowed_events
from journalflow.core.roles import get_current_profile, get_user_directory, require_any_role
from journalflow.models.user import Role, UserProfile, UserSummary
from journalflow.services.user_directory import UserDirectory

router = APIRouter(prefix="/users", tags=["Users"])
editor_or_admin = require_any_role([Role.EDITOR, Role.ADMIN])


class MeResponse(BaseModel):
    profile: UserProfile
    capabilities: list[str]


@router.get("/me", response_model=MeResponse)
async def get_me(profile: UserProfile = Depends(get_current_profile)):
    """当前用户 profile + 可触发的工作流事件（前端按此渲染按钮）"""
    return MeResponse(
        profile=profile,
        capabilities=sorted(event.value for event in allowed_events(profile.role)),
    )


@router.get("", response_model=list[UserSummary])
async def list_users_by_role(
    role: Role = Query(..., description="reviewer / copyeditor / publisher ..."),
    _profile: UserProfile = Depends(editor_or_admin),
    directory: UserDirectory = Depends(get_user_directory),
):
    """编辑挑选被指派人的候选列表"""
    return directory.list_by_role(role)
