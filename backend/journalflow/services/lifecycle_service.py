"""
Lifecycle Service：稿件生命周期状态机

中文注释:
1. 所有状态变更都走这里（或委托给 assignment/revision 服务），API 层只做请求校验与路由。
2. 每个操作都基于服务端最新行执行守卫（角色 -> 归属/指派 -> 状态）并写回；失败不产生任何写入。
3. 状态流转表见 services/workflow_rules.py；成功的每次流转记录一条 INFO 日志。
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Literal, Optional

from journalflow.core.config import WorkflowConfig
from journalflow.core.errors import InvalidTransition, Unauthorized
from journalflow.core.role_matrix import WorkflowEvent
from journalflow.models.submission import (
    Decision,
    DecisionStatus,
    ManuscriptVersion,
    Submission,
    SubmissionStatus,
)
from journalflow.models.user import Role, UserProfile
from journalflow.schemas.workflow import CopyeditUpload, ResubmitRequest, SubmissionCreate, SubmissionPatch
from journalflow.services.assignment_service import AssignmentService
from journalflow.services.review_service import is_round_complete, pending_count
from journalflow.services.revision_service import RevisionService, apply_revision_request
from journalflow.services.submission_store import SubmissionStore
from journalflow.services.user_directory import UserDirectory
from journalflow.services.workflow_rules import (
    bind_editor_if_missing,
    ensure_permitted,
    ensure_role,
    resolve_transition,
)

logger = logging.getLogger("journalflow.lifecycle")

# PUT 允许清空的可空字段
_NULLABLE_PATCH_FIELDS = {"cover_letter"}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleService:
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
        self.assignments = AssignmentService(self.store, self.directory, config=self.config, clock=self._clock)
        self.revisions = RevisionService(self.store, config=self.config, clock=self._clock)

    def _now(self) -> datetime:
        return self._clock()

    def _log_transition(
        self,
        submission: Submission,
        event: WorkflowEvent,
        from_status: SubmissionStatus | None,
        actor: UserProfile,
    ) -> None:
        logger.info(
            "submission=%s event=%s %s -> %s actor=%s",
            submission.id,
            event.value,
            from_status.value if from_status else "-",
            submission.status.value,
            actor.id,
        )

    def _run(
        self,
        submission_id: str,
        event: WorkflowEvent,
        actor: UserProfile,
        apply: Callable[[Submission], Submission],
    ) -> Submission:
        seen: dict[str, SubmissionStatus] = {}

        def _wrapped(submission: Submission) -> Submission:
            seen["from"] = submission.status
            return apply(submission)

        updated = self.store.mutate(submission_id, _wrapped)
        self._log_transition(updated, event, seen.get("from"), actor)
        return updated

    # --- draft / content ---

    def create_draft(self, payload: SubmissionCreate, actor: UserProfile) -> Submission:
        ensure_role(actor, WorkflowEvent.CREATE)
        now = self._now()
        submission = Submission(
            id=str(uuid.uuid4()),
            title=payload.title.strip(),
            abstract=payload.abstract,
            authors=list(payload.authors),
            keywords=list(payload.keywords),
            category=payload.category or "Uncategorized",
            document=payload.document,
            cover_letter=payload.cover_letter,
            status=SubmissionStatus.DRAFT,
            manuscript_version=ManuscriptVersion.INITIAL,
            submitted_date=now,
            updated_date=now,
            corresponding_author=actor.id,
            peer_review_type=payload.peer_review_type,
        )
        created = self.store.insert(submission)
        self._log_transition(created, WorkflowEvent.CREATE, None, actor)
        return created

    def update(self, submission_id: str, patch: SubmissionPatch, actor: UserProfile) -> Submission:
        """
        通用内容更新（PUT）。

        中文注释:
        - 作者：仅本人、仅 draft 状态；
        - 编辑/管理员：发表前均可修改内容字段；
        - 工作流字段（status/reviewers/decision...）不在 SubmissionPatch 中，无法经此修改。
        """
        changes = {
            key: value
            for key, value in patch.model_dump(exclude_unset=True).items()
            if value is not None or key in _NULLABLE_PATCH_FIELDS
        }
        now = self._now()

        def _apply(submission: Submission) -> Submission:
            if actor.is_editorial:
                ensure_role(actor, WorkflowEvent.EDIT_CONTENT)
                if submission.status == SubmissionStatus.PUBLISHED:
                    raise InvalidTransition("Published submissions can no longer be edited")
                bind_editor_if_missing(submission, actor)
            else:
                ensure_permitted(actor, submission, WorkflowEvent.EDIT_DRAFT)
                if submission.status != SubmissionStatus.DRAFT:
                    raise InvalidTransition(
                        f"Authors can only edit drafts; this submission is '{submission.status.value}'"
                    )
            for key, value in changes.items():
                setattr(submission, key, value)
            submission.updated_date = now
            return submission

        event = WorkflowEvent.EDIT_CONTENT if actor.is_editorial else WorkflowEvent.EDIT_DRAFT
        return self._run(submission_id, event, actor, _apply)

    # --- transitions ---

    def submit(self, submission_id: str, actor: UserProfile) -> Submission:
        now = self._now()

        def _apply(submission: Submission) -> Submission:
            ensure_permitted(actor, submission, WorkflowEvent.SUBMIT)
            submission.status = resolve_transition(submission.status, WorkflowEvent.SUBMIT)
            submission.updated_date = now
            return submission

        return self._run(submission_id, WorkflowEvent.SUBMIT, actor, _apply)

    def desk_decision(
        self,
        submission_id: str,
        decision: Literal["accept", "reject"],
        actor: UserProfile,
        comments: str = "",
    ) -> Submission:
        if decision == "accept":
            event, outcome = WorkflowEvent.DESK_ACCEPT, DecisionStatus.ACCEPT
        elif decision == "reject":
            event, outcome = WorkflowEvent.DESK_REJECT, DecisionStatus.REJECT
        else:
            raise InvalidTransition(f"Unknown desk decision '{decision}'")
        ensure_role(actor, event)
        now = self._now()

        def _apply(submission: Submission) -> Submission:
            submission.status = resolve_transition(submission.status, event)
            submission.decision = Decision(status=outcome, comments=comments or "", date=now)
            submission.updated_date = now
            bind_editor_if_missing(submission, actor)
            return submission

        return self._run(submission_id, event, actor, _apply)

    def send_to_review(self, submission_id: str, reviewer_ids: list[str], actor: UserProfile) -> Submission:
        return self.assignments.assign_reviewers_and_open_review(submission_id, reviewer_ids, actor)

    def record_decision(
        self,
        submission_id: str,
        decision: Literal["accept", "reject", "revision"],
        actor: UserProfile,
        comments: str = "",
    ) -> Submission:
        """
        审稿后的编辑决定（under_review -> accepted / rejected / revision_required）。
        """
        ensure_role(actor, WorkflowEvent.RECORD_DECISION)
        outcome = DecisionStatus(decision)
        now = self._now()

        def _apply(submission: Submission) -> Submission:
            if (
                self.config.require_complete_round
                and submission.status == SubmissionStatus.UNDER_REVIEW
                and not is_round_complete(submission)
            ):
                raise InvalidTransition(
                    f"The review round is not complete: {pending_count(submission)} review(s) still pending"
                )
            if outcome == DecisionStatus.REVISION:
                return apply_revision_request(submission, comments=comments, actor=actor, now=now)

            target = SubmissionStatus.ACCEPTED if outcome == DecisionStatus.ACCEPT else SubmissionStatus.REJECTED
            submission.status = resolve_transition(submission.status, WorkflowEvent.RECORD_DECISION, target)
            submission.decision = Decision(status=outcome, comments=comments or "", date=now)
            submission.updated_date = now
            bind_editor_if_missing(submission, actor)
            return submission

        return self._run(submission_id, WorkflowEvent.RECORD_DECISION, actor, _apply)

    def resubmit(self, submission_id: str, payload: ResubmitRequest, actor: UserProfile) -> Submission:
        return self.revisions.resubmit(submission_id, payload, actor)

    def upload_copyedit(self, submission_id: str, payload: CopyeditUpload, actor: UserProfile) -> Submission:
        """文字编辑上传定稿：替换 document，manuscript_version -> copy_editing。"""
        ensure_role(actor, WorkflowEvent.UPLOAD_COPYEDIT)
        now = self._now()

        def _apply(submission: Submission) -> Submission:
            if actor.id not in (submission.copyeditors or []):
                raise Unauthorized("Only an assigned copyeditor may upload the copy-edited manuscript")
            if submission.status != SubmissionStatus.ACCEPTED:
                raise InvalidTransition(
                    f"Copy-edited files can only be uploaded for accepted submissions (current: '{submission.status.value}')"
                )
            submission.document = payload.document
            submission.manuscript_version = submission.manuscript_version.advance_to(ManuscriptVersion.COPY_EDITING)
            submission.updated_date = now
            return submission

        return self._run(submission_id, WorkflowEvent.UPLOAD_COPYEDIT, actor, _apply)

    def publish(self, submission_id: str, actor: UserProfile) -> Submission:
        ensure_role(actor, WorkflowEvent.PUBLISH)
        now = self._now()

        def _apply(submission: Submission) -> Submission:
            if actor.role == Role.PUBLISHER and actor.id not in (submission.publishers or []):
                raise Unauthorized("Only an assigned publisher may publish this submission")
            submission.status = resolve_transition(submission.status, WorkflowEvent.PUBLISH)
            submission.publication_date = now
            submission.manuscript_version = submission.manuscript_version.advance_to(ManuscriptVersion.FINAL)
            submission.updated_date = now
            bind_editor_if_missing(submission, actor)
            return submission

        return self._run(submission_id, WorkflowEvent.PUBLISH, actor, _apply)
