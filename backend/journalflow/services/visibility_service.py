"""
Role-Scoped View Filter

中文注释:
- editor/admin：全部稿件（mine=true 时仅本人负责的稿件）；
- 作者：本人为通讯作者的稿件；
- 审稿人：被指派（reviewers 包含本人）的稿件；
- 其他角色（reader/copyeditor/publisher）：仅已发表稿件。
- 对非编辑、且非该审稿意见作者的查看者，隐藏 private_comments。
- 无权查看的稿件一律按 NotFound 处理，不暴露其存在。
"""

from __future__ import annotations

from typing import Optional

from journalflow.core.errors import NotFound
from journalflow.models.submission import PeerReviewType, Submission, SubmissionStatus
from journalflow.models.user import Role, UserProfile
from journalflow.services.submission_store import SubmissionStore


def is_visible(submission: Submission, viewer: UserProfile) -> bool:
    """与 list_for_actor 的角色范围一致：单条读取不能看到列表里没有的稿件。"""
    if viewer.is_editorial:
        return True
    if viewer.role == Role.AUTHOR:
        return submission.corresponding_author == viewer.id
    if viewer.role == Role.REVIEWER:
        return viewer.id in (submission.reviewers or [])
    return submission.status == SubmissionStatus.PUBLISHED


def redact_for_viewer(submission: Submission, viewer: UserProfile) -> Submission:
    if viewer.is_editorial or not submission.reviews:
        return submission
    redacted = submission.model_copy(deep=True)
    for review in redacted.reviews or []:
        if review.reviewer_id != viewer.id:
            review.private_comments = None
    return redacted


def _matches(submission: Submission, needle: str) -> bool:
    haystack = [submission.title, submission.abstract, *submission.keywords, *submission.authors]
    return any(needle in (text or "").lower() for text in haystack)


class VisibilityService:
    def __init__(self, store: SubmissionStore | None = None) -> None:
        self.store = store or SubmissionStore()

    def list_for_actor(
        self,
        actor: UserProfile,
        *,
        status: Optional[SubmissionStatus] = None,
        peer_review_type: Optional[PeerReviewType] = None,
        mine: bool = False,
    ) -> list[Submission]:
        status_value = status.value if status else None
        prt_value = peer_review_type.value if peer_review_type else None

        if actor.is_editorial:
            rows = self.store.list_submissions(
                editor_id=actor.id if mine else None,
                status=status_value,
                peer_review_type=prt_value,
            )
        elif actor.role == Role.AUTHOR:
            rows = self.store.list_submissions(
                corresponding_author=actor.id,
                status=status_value,
                peer_review_type=prt_value,
            )
        elif actor.role == Role.REVIEWER:
            rows = self.store.list_submissions(
                reviewer_id=actor.id,
                status=status_value,
                peer_review_type=prt_value,
            )
        else:
            if status is not None and status != SubmissionStatus.PUBLISHED:
                return []
            rows = self.store.list_submissions(
                status=SubmissionStatus.PUBLISHED.value,
                peer_review_type=prt_value,
            )
        return [redact_for_viewer(s, actor) for s in rows if is_visible(s, actor)]

    def get_for_actor(self, submission_id: str, actor: UserProfile) -> Submission:
        submission = self.store.get(submission_id)
        if not is_visible(submission, actor):
            raise NotFound(f"Submission {submission_id} not found")
        return redact_for_viewer(submission, actor)

    def search_published(self, q: Optional[str] = None) -> list[Submission]:
        """已发表文章列表/检索（标题、摘要、关键词、作者，大小写不敏感）。"""
        rows = self.store.list_submissions(status=SubmissionStatus.PUBLISHED.value)
        needle = (q or "").strip().lower()
        if needle:
            rows = [s for s in rows if _matches(s, needle)]
        # 公共接口不暴露审稿信息
        return [s.model_copy(update={"reviews": None, "reviewers": None}) for s in rows]
