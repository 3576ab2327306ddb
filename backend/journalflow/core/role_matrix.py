from __future__ import annotations

from enum import Enum

from journalflow.models.user import Role, normalize_role

# 中文注释：
# - 这里集中定义“角色 -> 事件”权限矩阵，状态机统一查表，避免角色判断散落在各路由。
# - 作者类事件（submit/resubmit/edit_draft）另有“必须是通讯作者本人”的归属校验，见 lifecycle_service。


class WorkflowEvent(str, Enum):
    CREATE = "create"
    EDIT_DRAFT = "edit_draft"
    EDIT_CONTENT = "edit_content"
    SUBMIT = "submit"
    DESK_ACCEPT = "desk_accept"
    DESK_REJECT = "desk_reject"
    SEND_TO_REVIEW = "send_to_review"
    ASSIGN = "assign"
    RECORD_DECISION = "record_decision"
    SUBMIT_REVIEW = "submit_review"
    SUBMIT_REVIEW_ON_BEHALF = "submit_review_on_behalf"
    RESUBMIT = "resubmit"
    UPLOAD_COPYEDIT = "upload_copyedit"
    PUBLISH = "publish"
    VIEW_ROUND = "view_round"
    LIST_USERS = "list_users"


_EDITORIAL_EVENTS = {
    WorkflowEvent.EDIT_CONTENT,
    WorkflowEvent.DESK_ACCEPT,
    WorkflowEvent.DESK_REJECT,
    WorkflowEvent.SEND_TO_REVIEW,
    WorkflowEvent.ASSIGN,
    WorkflowEvent.RECORD_DECISION,
    WorkflowEvent.SUBMIT_REVIEW_ON_BEHALF,
    WorkflowEvent.PUBLISH,
    WorkflowEvent.VIEW_ROUND,
    WorkflowEvent.LIST_USERS,
}

ROLE_EVENTS: dict[Role, set[WorkflowEvent]] = {
    Role.AUTHOR: {
        WorkflowEvent.CREATE,
        WorkflowEvent.EDIT_DRAFT,
        WorkflowEvent.SUBMIT,
        WorkflowEvent.RESUBMIT,
    },
    Role.REVIEWER: {
        WorkflowEvent.SUBMIT_REVIEW,
    },
    Role.EDITOR: set(_EDITORIAL_EVENTS),
    Role.ADMIN: set(_EDITORIAL_EVENTS),
    Role.COPYEDITOR: {
        WorkflowEvent.UPLOAD_COPYEDIT,
    },
    Role.PUBLISHER: {
        WorkflowEvent.PUBLISH,
    },
    Role.READER: set(),
}


def can_perform(*, event: WorkflowEvent, role: Role | str | None) -> bool:
    """
    判定角色是否可触发某事件（仅角色维度，不含归属/指派校验）。
    """
    normalized = role if isinstance(role, Role) else normalize_role(role)
    if normalized is None:
        return False
    return event in ROLE_EVENTS.get(normalized, set())


def allowed_events(role: Role | str | None) -> set[WorkflowEvent]:
    """
    返回当前角色可触发的事件集合（用于前端 capability 输出）。
    """
    normalized = role if isinstance(role, Role) else normalize_role(role)
    if normalized is None:
        return set()
    return set(ROLE_EVENTS.get(normalized, set()))


def roles_for(event: WorkflowEvent) -> list[Role]:
    return [role for role, events in ROLE_EVENTS.items() if event in events]
