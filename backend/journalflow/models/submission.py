from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SubmissionStatus(str, Enum):
    """
    稿件生命周期状态（显性枚举，状态流转规则见 services/lifecycle_service.py）。
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUIRED = "revision_required"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PUBLISHED = "published"


class ManuscriptVersion(str, Enum):
    INITIAL = "initial"
    REVIEWING = "reviewing"
    COPY_EDITING = "copy_editing"
    FINAL = "final"

    @property
    def rank(self) -> int:
        return _VERSION_LADDER.index(self)

    def advance_to(self, target: "ManuscriptVersion") -> "ManuscriptVersion":
        """版本只前进不后退。"""
        return target if target.rank > self.rank else self


_VERSION_LADDER = [
    ManuscriptVersion.INITIAL,
    ManuscriptVersion.REVIEWING,
    ManuscriptVersion.COPY_EDITING,
    ManuscriptVersion.FINAL,
]


class PeerReviewType(str, Enum):
    OPEN = "open"
    SINGLE_BLIND = "single_blind"
    DOUBLE_BLIND = "double_blind"


class DecisionStatus(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    REVISION = "revision"


class ReviewDecision(str, Enum):
    ACCEPT = "accept"
    MINOR_REVISIONS = "minor_revisions"
    MAJOR_REVISIONS = "major_revisions"
    REJECT = "reject"


class AssignmentRole(str, Enum):
    REVIEWER = "reviewer"
    COPYEDITOR = "copyeditor"
    PUBLISHER = "publisher"

    @property
    def field_name(self) -> str:
        return f"{self.value}s"


# 0 表示“尚未评分”；overall 必填
CRITERIA_KEYS = ("methodology", "relevance", "clarity", "originality", "overall")
CRITERIA_MIN = 0
CRITERIA_MAX = 5


def empty_criteria() -> dict[str, int]:
    return {key: 0 for key in CRITERIA_KEYS}


class Decision(BaseModel):
    """编辑最近一次决定（覆盖写，不追加历史）。"""

    status: DecisionStatus
    comments: str = ""
    date: datetime


class ResubmissionDetails(BaseModel):
    """最近一轮修回记录；previous_version 为修回前的 document。"""

    response_to_reviewers: str
    changes_summary: str
    resubmission_date: datetime
    previous_version: str


class Review(BaseModel):
    id: str
    submission_id: str
    reviewer_id: str
    completed: bool = False
    decision: Optional[ReviewDecision] = None
    comments: str = ""
    private_comments: Optional[str] = Field(None, description="仅编辑/审稿人可见")
    due_date: datetime
    submitted_date: Optional[datetime] = None
    criteria: dict[str, int] = Field(default_factory=empty_criteria)


class Submission(BaseModel):
    id: str
    title: str
    abstract: str = ""
    authors: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    category: str = "Uncategorized"
    document: str = ""
    cover_letter: Optional[str] = None

    status: SubmissionStatus = SubmissionStatus.DRAFT
    manuscript_version: ManuscriptVersion = ManuscriptVersion.INITIAL
    submitted_date: datetime
    updated_date: datetime
    publication_date: Optional[datetime] = None

    corresponding_author: str
    editor_id: Optional[str] = None
    reviewers: Optional[list[str]] = None
    copyeditors: Optional[list[str]] = None
    publishers: Optional[list[str]] = None

    reviews: Optional[list[Review]] = None
    decision: Optional[Decision] = None
    resubmission_details: Optional[ResubmissionDetails] = None
    peer_review_type: PeerReviewType = PeerReviewType.SINGLE_BLIND

    revision_round: int = 0
    row_version: int = 0

    def review_for(self, reviewer_id: str) -> Optional[Review]:
        for review in self.reviews or []:
            if review.reviewer_id == reviewer_id:
                return review
        return None

    def assignees(self, role: AssignmentRole) -> list[str]:
        return list(getattr(self, role.field_name) or [])

    def invariant_violations(self) -> list[str]:
        """
        返回违反数据不变量的描述列表（空列表表示一致）。

        中文注释:
        - reviewers 与 reviews 必须引用同一组 id，且均无重复；
        - completed 与 submitted_date 必须同时存在；未完成的 review 不得带 decision；
        - 已完成的 review 必须有 decision，criteria.overall 必须存在。
        """
        problems: list[str] = []
        reviewer_ids = list(self.reviewers or [])
        review_ids = [r.reviewer_id for r in self.reviews or []]

        if len(set(reviewer_ids)) != len(reviewer_ids):
            problems.append("duplicate reviewer ids")
        if len(set(review_ids)) != len(review_ids):
            problems.append("more than one review per reviewer")
        if (self.reviewers is not None or self.reviews is not None) and set(reviewer_ids) != set(review_ids):
            problems.append("reviewers and reviews reference different reviewer ids")

        for review in self.reviews or []:
            if review.submission_id != self.id:
                problems.append(f"review {review.id} belongs to another submission")
            if review.completed != (review.submitted_date is not None):
                problems.append(f"review {review.id} completed flag and submitted_date disagree")
            if not review.completed and review.decision is not None:
                problems.append(f"review {review.id} has a decision before completion")
            if review.completed and review.decision is None:
                problems.append(f"review {review.id} is completed without a decision")
            if review.criteria.get("overall") is None:
                problems.append(f"review {review.id} has no overall rating")

        for role in (AssignmentRole.COPYEDITOR, AssignmentRole.PUBLISHER):
            ids = self.assignees(role)
            if len(set(ids)) != len(ids):
                problems.append(f"duplicate {role.value} ids")
        return problems

    def to_row(self) -> dict:
        return self.model_dump(mode="json")
