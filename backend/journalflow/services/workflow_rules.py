"""
稿件状态机规则表

中文注释:
- 状态流转规则必须显性可见：(当前状态, 事件) -> 允许的目标状态集合。
- 状态机是“全函数”：表中不存在的 (状态, 事件) 组合一律拒绝（InvalidTransition），从不静默忽略。
- 守卫顺序：角色 -> 归属/指派 -> 状态。任何守卫失败都不产生写入。
"""

from __future__ import annotations

from journalflow.core.errors import InvalidTransition, Unauthorized
from journalflow.core.role_matrix import WorkflowEvent, can_perform, roles_for
from journalflow.models.submission import Submission, SubmissionStatus
from journalflow.models.user import UserProfile

S = SubmissionStatus
E = WorkflowEvent

TRANSITIONS: dict[tuple[SubmissionStatus, WorkflowEvent], frozenset[SubmissionStatus]] = {
    (S.DRAFT, E.SUBMIT): frozenset({S.SUBMITTED}),
    (S.SUBMITTED, E.DESK_ACCEPT): frozenset({S.ACCEPTED}),
    (S.SUBMITTED, E.DESK_REJECT): frozenset({S.REJECTED}),
    (S.SUBMITTED, E.SEND_TO_REVIEW): frozenset({S.UNDER_REVIEW}),
    (S.UNDER_REVIEW, E.RECORD_DECISION): frozenset({S.ACCEPTED, S.REJECTED, S.REVISION_REQUIRED}),
    (S.REVISION_REQUIRED, E.RESUBMIT): frozenset({S.UNDER_REVIEW}),
    (S.ACCEPTED, E.PUBLISH): frozenset({S.PUBLISHED}),
}

# 只允许通讯作者本人触发的事件
OWNER_EVENTS = frozenset({E.SUBMIT, E.RESUBMIT, E.EDIT_DRAFT})

_EVENT_LABELS = {
    E.SUBMIT: "submit",
    E.RESUBMIT: "resubmit",
    E.EDIT_DRAFT: "edit this draft",
}


def allowed_next(status: SubmissionStatus) -> set[SubmissionStatus]:
    out: set[SubmissionStatus] = set()
    for (from_status, _event), targets in TRANSITIONS.items():
        if from_status == status:
            out.update(targets)
    return out


def resolve_transition(
    status: SubmissionStatus,
    event: WorkflowEvent,
    target: SubmissionStatus | None = None,
) -> SubmissionStatus:
    """
    校验 (status, event[, target]) 并返回目标状态。
    """
    targets = TRANSITIONS.get((status, event))
    if not targets:
        reachable = ", ".join(sorted(s.value for s in allowed_next(status))) or "none, the status is terminal"
        raise InvalidTransition(
            f"Cannot {event.value} a submission in status '{status.value}' (next allowed statuses: {reachable})"
        )
    if target is None:
        if len(targets) != 1:
            raise InvalidTransition(f"Event {event.value} needs an explicit target status")
        return next(iter(targets))
    if target not in targets:
        raise InvalidTransition(
            f"Invalid transition: {status.value} -> {target.value} via {event.value}. "
            f"Allowed: {sorted(t.value for t in targets)}"
        )
    return target


def ensure_role(actor: UserProfile, event: WorkflowEvent) -> None:
    if not can_perform(event=event, role=actor.role):
        allowed = ", ".join(sorted(r.value for r in roles_for(event))) or "nobody"
        raise Unauthorized(f"Role '{actor.role.value}' may not {event.value}; allowed roles: {allowed}")


def ensure_owner(actor: UserProfile, submission: Submission, event: WorkflowEvent) -> None:
    if actor.id != submission.corresponding_author:
        label = _EVENT_LABELS.get(event, event.value)
        raise Unauthorized(f"Only the corresponding author may {label}")


def ensure_permitted(actor: UserProfile, submission: Submission, event: WorkflowEvent) -> None:
    """角色 + 归属守卫（不含状态校验）。"""
    ensure_role(actor, event)
    if event in OWNER_EVENTS:
        ensure_owner(actor, submission, event)


def bind_editor_if_missing(submission: Submission, actor: UserProfile) -> None:
    """首个执行编辑操作的 editor/admin 自动成为该稿件的 editor_id。"""
    if not submission.editor_id and actor.is_editorial:
        submission.editor_id = actor.id
