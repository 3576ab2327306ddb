"""
Revision Service: 退修 / 修回循环

中文注释:
1. 退修（revision）由编辑决定触发：decision.comments 作为作者可见的修改意见；reviews 不清空，
   作者修回时仍可参考上一轮审稿意见。
2. 修回（resubmit）仅限通讯作者、仅限 revision_required 状态，一次写入内完成：
   - resubmission_details.previous_version 记录“覆盖前”的 document；
   - document 替换为新稿；status 回到 under_review；updated_date 刷新；
   - manuscript_version 至少推进到 reviewing；revision_round + 1。
3. decision / resubmission_details 只保留最近一轮（覆盖写）。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from journalflow.core.config import WorkflowConfig
from journalflow.core.errors import InvalidTransition
from journalflow.core.role_matrix import WorkflowEvent
from journalflow.models.submission import (
    Decision,
    DecisionStatus,
    ManuscriptVersion,
    ResubmissionDetails,
    Submission,
    SubmissionStatus,
)
from journalflow.models.user import UserProfile
from journalflow.schemas.workflow import ResubmitRequest
from journalflow.services.submission_store import SubmissionStore
from journalflow.services.workflow_rules import bind_editor_if_missing, ensure_permitted, resolve_transition

logger = logging.getLogger("journalflow.revision")


def apply_revision_request(
    submission: Submission,
    *,
    comments: str,
    actor: UserProfile,
    now: datetime,
) -> Submission:
    """under_review -> revision_required（调用方已完成角色校验）。"""
    feedback = (comments or "").strip()
    if not feedback:
        raise InvalidTransition("A revision request needs comments for the author")

    target = resolve_transition(
        submission.status,
        WorkflowEvent.RECORD_DECISION,
        SubmissionStatus.REVISION_REQUIRED,
    )
    submission.decision = Decision(status=DecisionStatus.REVISION, comments=feedback, date=now)
    submission.status = target
    submission.updated_date = now
    bind_editor_if_missing(submission, actor)
    return submission


def apply_resubmission(
    submission: Submission,
    payload: ResubmitRequest,
    *,
    now: datetime,
) -> Submission:
    """revision_required -> under_review，保留修回前的 document 引用。"""
    target = resolve_transition(submission.status, WorkflowEvent.RESUBMIT)

    # 必须先取旧值再覆盖 document
    previous = submission.document
    submission.resubmission_details = ResubmissionDetails(
        response_to_reviewers=payload.response_to_reviewers,
        changes_summary=payload.changes_summary,
        resubmission_date=now,
        previous_version=previous,
    )
    submission.document = payload.document
    submission.status = target
    submission.updated_date = now
    submission.manuscript_version = submission.manuscript_version.advance_to(ManuscriptVersion.REVIEWING)
    submission.revision_round += 1
    return submission


class RevisionService:
    """Revision 工作流的核心服务类"""

    def __init__(
        self,
        store: SubmissionStore | None = None,
        *,
        config: WorkflowConfig | None = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or WorkflowConfig.from_env()
        self.store = store or SubmissionStore(config=self.config)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resubmit(self, submission_id: str, payload: ResubmitRequest, actor: UserProfile) -> Submission:
        """
        作者修回。

        中文注释: 守卫（角色 -> 归属 -> 状态）全部基于服务端最新行执行，任何一步失败都不会写入。
        """
        now = self._clock()
        state: dict[str, SubmissionStatus] = {}

        def _apply(submission: Submission) -> Submission:
            ensure_permitted(actor, submission, WorkflowEvent.RESUBMIT)
            state["from"] = submission.status
            return apply_resubmission(submission, payload, now=now)

        updated = self.store.mutate(submission_id, _apply)
        logger.info(
            "submission=%s event=%s %s -> %s actor=%s round=%s",
            updated.id,
            WorkflowEvent.RESUBMIT.value,
            state["from"].value,
            updated.status.value,
            actor.id,
            updated.revision_round,
        )
        return updated
