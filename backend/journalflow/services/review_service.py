"""
Review Aggregation：审稿提交与轮次统计

中文注释:
1. 审稿只写一次：completed=true 之后任何再次提交都返回 AlreadySubmitted，原记录不变。
2. 提交人必须在 submission.reviewers 中；编辑/管理员可代审稿人提交（显式传 reviewer_id）。
3. 逾期只是提示信息：逾期审稿仍可提交，不会自动过期或改派。
4. 轮次完成与否只供编辑参考，不会自动触发决定。
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import BaseModel, Field

from journalflow.core.config import WorkflowConfig
from journalflow.core.errors import AlreadySubmitted, InvalidTransition, NotFound, Unauthorized
from journalflow.core.role_matrix import WorkflowEvent
from journalflow.models.submission import Review, Submission, SubmissionStatus, empty_criteria
from journalflow.models.user import UserProfile
from journalflow.schemas.workflow import ReviewPayload
from journalflow.services.submission_store import SubmissionStore
from journalflow.services.workflow_rules import bind_editor_if_missing, ensure_role

logger = logging.getLogger("journalflow.reviews")


def is_round_complete(submission: Submission) -> bool:
    return all(review.completed for review in submission.reviews or [])


def pending_count(submission: Submission) -> int:
    return sum(1 for review in submission.reviews or [] if not review.completed)


def completed_count(submission: Submission) -> int:
    return sum(1 for review in submission.reviews or [] if review.completed)


def is_overdue(review: Review, *, now: datetime) -> bool:
    return not review.completed and review.due_date < now


def is_due_soon(review: Review, *, now: datetime, window_days: int = 7) -> bool:
    return not review.completed and review.due_date < now + timedelta(days=window_days)


class RoundStatus(BaseModel):
    submission_id: str
    status: SubmissionStatus
    total: int
    completed: int
    pending: int
    complete: bool
    overdue: list[str] = Field(default_factory=list, description="逾期未提交的审稿人 id")
    due_soon: list[str] = Field(default_factory=list, description="即将到期的审稿人 id")


def round_summary(submission: Submission, *, now: datetime, window_days: int = 7) -> RoundStatus:
    reviews = submission.reviews or []
    return RoundStatus(
        submission_id=submission.id,
        status=submission.status,
        total=len(reviews),
        completed=completed_count(submission),
        pending=pending_count(submission),
        complete=is_round_complete(submission),
        overdue=[r.reviewer_id for r in reviews if is_overdue(r, now=now)],
        due_soon=[r.reviewer_id for r in reviews if is_due_soon(r, now=now, window_days=window_days)],
    )


def merge_criteria(raw: dict[str, Optional[int]]) -> dict[str, int]:
    """缺省的评分项补 0；保留扩展键。"""
    merged = empty_criteria()
    for key, score in (raw or {}).items():
        merged[str(key)] = int(score) if score is not None else 0
    return merged


def apply_review(
    submission: Submission,
    reviewer_id: str,
    payload: ReviewPayload,
    *,
    now: datetime,
) -> Submission:
    if reviewer_id not in (submission.reviewers or []):
        raise Unauthorized("Only an assigned reviewer may submit a review for this submission")

    review = submission.review_for(reviewer_id)
    if review is None:
        raise NotFound(f"No review for reviewer {reviewer_id} on submission {submission.id}")
    if review.completed:
        raise AlreadySubmitted(
            f"Reviewer {reviewer_id} already submitted a review on {review.submitted_date.isoformat()}; reviews are write-once"
        )
    if submission.status != SubmissionStatus.UNDER_REVIEW:
        raise InvalidTransition(
            f"Reviews can only be submitted while the submission is under_review (current: '{submission.status.value}')"
        )
    review.completed = True
    review.submitted_date = now
    review.decision = payload.decision
    review.comments = payload.comments
    review.private_comments = payload.private_comments
    review.criteria = merge_criteria(payload.criteria)
    submission.updated_date = now
    return submission


class ReviewService:
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

    def submit_review(self, submission_id: str, payload: ReviewPayload, actor: UserProfile) -> Review:
        """
        提交审稿意见。

        中文注释:
        - reviewer_id 缺省为当前用户；与当前用户不同即视为“代审”，需要编辑权限。
        - 返回服务端写入后的 Review（而不是本地构造的对象）。
        """
        reviewer_id = (payload.reviewer_id or actor.id).strip()
        if reviewer_id == actor.id:
            ensure_role(actor, WorkflowEvent.SUBMIT_REVIEW)
        else:
            ensure_role(actor, WorkflowEvent.SUBMIT_REVIEW_ON_BEHALF)

        now = self._clock()

        def _apply(submission: Submission) -> Submission:
            apply_review(submission, reviewer_id, payload, now=now)
            if reviewer_id != actor.id:
                bind_editor_if_missing(submission, actor)
            return submission

        updated = self.store.mutate(submission_id, _apply)
        review = updated.review_for(reviewer_id)
        if review is None:
            raise NotFound(f"No review for reviewer {reviewer_id} on submission {submission_id}")

        logger.info(
            "submission=%s event=%s review=%s reviewer=%s actor=%s decision=%s",
            updated.id,
            WorkflowEvent.SUBMIT_REVIEW.value,
            review.id,
            reviewer_id,
            actor.id,
            review.decision.value if review.decision else None,
        )
        if is_round_complete(updated):
            logger.info("submission=%s review round complete (%s reviews)", updated.id, completed_count(updated))
        return review

    def round_status(self, submission_id: str, actor: UserProfile) -> RoundStatus:
        ensure_role(actor, WorkflowEvent.VIEW_ROUND)
        submission = self.store.get(submission_id)
        return round_summary(submission, now=self._clock(), window_days=self.config.due_soon_days)
