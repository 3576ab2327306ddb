"""
Assignment Manager：审稿人 / 文字编辑 / 出版人指派

中文注释:
1. 语义是“替换集合”（replace-set）而不是追加：最终指派集合 = 本次传入的 user_ids。
2. 审稿人指派会同步 reviews：
   - 新增的审稿人生成空白 Review（due_date = now + REVIEW_DUE_DAYS）；
   - 被移除且尚未提交的 Review 直接丢弃；
   - 被移除但已提交（completed）的 Review 永不丢弃，其审稿人继续保留在 reviewers 中，
     以维持 reviewers/reviews 一一对应的不变量；
   - 两边都有的审稿人，原 Review 原样保留。
3. 稿件处于 submitted 时指派审稿人即进入 under_review（assign_reviewers_and_open_review）。
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from journalflow.core.config import WorkflowConfig
from journalflow.core.errors import InvalidAssignment, InvalidTransition, RoleMismatch
from journalflow.core.role_matrix import WorkflowEvent
from journalflow.models.submission import (
    AssignmentRole,
    Review,
    Submission,
    SubmissionStatus,
    empty_criteria,
)
from journalflow.models.user import Role, UserProfile
from journalflow.services.submission_store import SubmissionStore
from journalflow.services.user_directory import UserDirectory
from journalflow.services.workflow_rules import bind_editor_if_missing, ensure_role, resolve_transition

logger = logging.getLogger("journalflow.assignment")

ASSIGNEE_ROLE: dict[AssignmentRole, Role] = {
    AssignmentRole.REVIEWER: Role.REVIEWER,
    AssignmentRole.COPYEDITOR: Role.COPYEDITOR,
    AssignmentRole.PUBLISHER: Role.PUBLISHER,
}

# 各类指派允许发生的稿件状态
ASSIGNABLE_STATUSES: dict[AssignmentRole, set[SubmissionStatus]] = {
    AssignmentRole.REVIEWER: {SubmissionStatus.SUBMITTED, SubmissionStatus.UNDER_REVIEW},
    AssignmentRole.COPYEDITOR: {SubmissionStatus.ACCEPTED},
    AssignmentRole.PUBLISHER: {SubmissionStatus.ACCEPTED},
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _dedupe(user_ids: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for raw in user_ids or []:
        uid = str(raw or "").strip()
        if uid and uid not in seen:
            seen.add(uid)
            out.append(uid)
    return out


def new_review(submission_id: str, reviewer_id: str, *, now: datetime, due_days: int) -> Review:
    return Review(
        id=str(uuid.uuid4()),
        submission_id=submission_id,
        reviewer_id=reviewer_id,
        completed=False,
        comments="",
        due_date=now + timedelta(days=due_days),
        criteria=empty_criteria(),
    )


def reconcile_reviewers(submission: Submission, reviewer_ids: list[str], *, now: datetime, due_days: int) -> Submission:
    """按 replace-set 语义同步 reviewers 与 reviews（纯函数式修改传入副本）。"""
    existing = {review.reviewer_id: review for review in submission.reviews or []}
    wanted = set(reviewer_ids)

    retained = [
        rid
        for rid in _dedupe([*(submission.reviewers or []), *existing.keys()])
        if rid not in wanted and existing.get(rid) is not None and existing[rid].completed
    ]
    final_ids = [*reviewer_ids, *retained]

    reviews: list[Review] = []
    for rid in final_ids:
        review = existing.get(rid)
        if review is None:
            review = new_review(submission.id, rid, now=now, due_days=due_days)
        reviews.append(review)

    dropped = [rid for rid, review in existing.items() if rid not in final_ids]
    if dropped:
        logger.info("submission=%s discarded unsubmitted reviews for %s", submission.id, dropped)
    if retained:
        logger.info("submission=%s kept completed reviews of unassigned reviewers %s", submission.id, retained)

    submission.reviewers = final_ids
    submission.reviews = reviews
    return submission


class AssignmentService:
    def __init__(
        self,
        store: SubmissionStore | None = None,
        directory: UserDirectory | None = None,
        *,
        config: WorkflowConfig | None = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or WorkflowConfig.from_env()
        self.store = store or SubmissionStore(config=self.config)
        self.directory = directory or UserDirectory()
        self._clock = clock or _utc_now

    def _now(self) -> datetime:
        return self._clock()

    def validate_assignees(self, role: AssignmentRole, user_ids: Iterable[str]) -> list[str]:
        """
        校验被指派人：存在、角色匹配；审稿人集合不能为空。
        """
        ids = _dedupe(user_ids)
        if role == AssignmentRole.REVIEWER and not ids:
            raise InvalidAssignment("A review round needs at least one reviewer")
        if not ids:
            return ids

        profiles = self.directory.get_many(ids)
        missing = [uid for uid in ids if uid not in profiles]
        if missing:
            raise InvalidAssignment(f"Unknown users cannot be assigned: {', '.join(missing)}")

        expected = ASSIGNEE_ROLE[role]
        for uid in ids:
            actual = profiles[uid].role
            if actual != expected:
                raise RoleMismatch(
                    f"User {uid} has role '{actual.value}' and cannot be assigned as {role.value}"
                )
        return ids

    def _ensure_author_excluded(self, submission: Submission, ids: list[str]) -> None:
        if submission.corresponding_author in ids:
            raise InvalidAssignment("The corresponding author cannot be assigned to their own submission")

    def _ensure_assignable(self, submission: Submission, role: AssignmentRole) -> None:
        if submission.status not in ASSIGNABLE_STATUSES[role]:
            allowed = sorted(s.value for s in ASSIGNABLE_STATUSES[role])
            raise InvalidTransition(
                f"Cannot assign {role.field_name} while submission is '{submission.status.value}'. Allowed: {allowed}"
            )

    def apply_open_review(
        self,
        submission: Submission,
        reviewer_ids: list[str],
        actor: UserProfile,
        now: datetime,
    ) -> Submission:
        """submitted -> under_review，同时写入审稿人与空白 Review。"""
        ensure_role(actor, WorkflowEvent.SEND_TO_REVIEW)
        if not reviewer_ids:
            raise InvalidAssignment("A review round needs at least one reviewer")
        from_status = submission.status
        target = resolve_transition(from_status, WorkflowEvent.SEND_TO_REVIEW)
        self._ensure_author_excluded(submission, reviewer_ids)

        reconcile_reviewers(submission, reviewer_ids, now=now, due_days=self.config.review_due_days)
        submission.status = target
        submission.updated_date = now
        bind_editor_if_missing(submission, actor)
        logger.info(
            "submission=%s event=%s %s -> %s actor=%s reviewers=%s",
            submission.id,
            WorkflowEvent.SEND_TO_REVIEW.value,
            from_status.value,
            target.value,
            actor.id,
            reviewer_ids,
        )
        return submission

    def assign_reviewers_and_open_review(
        self,
        submission_id: str,
        reviewer_ids: Iterable[str],
        actor: UserProfile,
    ) -> Submission:
        """
        组合操作：指派审稿人并打开审稿轮次（仅 submitted 状态可用）。
        """
        ensure_role(actor, WorkflowEvent.SEND_TO_REVIEW)
        ids = self.validate_assignees(AssignmentRole.REVIEWER, reviewer_ids)
        now = self._now()
        return self.store.mutate(submission_id, lambda sub: self.apply_open_review(sub, ids, actor, now))

    def assign(
        self,
        submission_id: str,
        role: AssignmentRole,
        user_ids: Iterable[str],
        actor: UserProfile,
    ) -> Submission:
        """
        替换某类指派集合（幂等）。submitted 状态下指派审稿人会进入 under_review。
        """
        ensure_role(actor, WorkflowEvent.ASSIGN)
        ids = self.validate_assignees(role, user_ids)
        now = self._now()

        def _apply(submission: Submission) -> Submission:
            self._ensure_assignable(submission, role)
            self._ensure_author_excluded(submission, ids)
            if role == AssignmentRole.REVIEWER:
                if submission.status == SubmissionStatus.SUBMITTED:
                    return self.apply_open_review(submission, ids, actor, now)
                before = submission.model_copy(deep=True)
                reconcile_reviewers(submission, ids, now=now, due_days=self.config.review_due_days)
                if before.reviewers == submission.reviewers and before.reviews == submission.reviews:
                    # 幂等：集合未变化时保持原样（不刷新 updated_date）
                    return submission
            else:
                if submission.assignees(role) == ids:
                    return submission
                setattr(submission, role.field_name, ids)

            bind_editor_if_missing(submission, actor)
            submission.updated_date = now
            logger.info(
                "submission=%s assigned %s=%s actor=%s",
                submission.id,
                role.field_name,
                getattr(submission, role.field_name),
                actor.id,
            )
            return submission

        return self.store.mutate(submission_id, _apply)
