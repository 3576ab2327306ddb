from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from journalflow.models.submission import (
    CRITERIA_MAX,
    CRITERIA_MIN,
    AssignmentRole,
    PeerReviewType,
    ReviewDecision,
)


class SubmissionCreate(BaseModel):
    """作者新建草稿（corresponding_author 由服务端取当前用户，不接受客户端传入）"""

    model_config = ConfigDict(extra="forbid")

    title: str = Field("Untitled Submission", min_length=1, max_length=500)
    abstract: str = Field("", max_length=20000)
    authors: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    category: str = "Uncategorized"
    document: str = ""
    cover_letter: Optional[str] = None
    peer_review_type: PeerReviewType = PeerReviewType.SINGLE_BLIND


class SubmissionPatch(BaseModel):
    """
    通用内容更新（PUT）。

    中文注释: 只允许修改内容字段；status/reviewers/decision 等工作流字段必须走对应操作。
    """

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    abstract: Optional[str] = Field(None, max_length=20000)
    authors: Optional[list[str]] = None
    keywords: Optional[list[str]] = None
    category: Optional[str] = None
    document: Optional[str] = None
    cover_letter: Optional[str] = None


class AssignRequest(BaseModel):
    role: AssignmentRole
    user_ids: list[str] = Field(default_factory=list)


class SendToReviewRequest(BaseModel):
    reviewer_ids: list[str] = Field(default_factory=list)


class DeskDecisionRequest(BaseModel):
    decision: Literal["accept", "reject"]
    comments: str = Field("", max_length=10000)


class EditorDecisionRequest(BaseModel):
    decision: Literal["accept", "reject", "revision"]
    comments: str = Field("", max_length=10000)


class ReviewPayload(BaseModel):
    """
    审稿提交内容。

    中文注释:
    - reviewer_id 缺省为当前用户；编辑代审时显式传入。
    - criteria 允许扩展键；缺省数值补 0，overall 必填且不可为 null。
    """

    reviewer_id: Optional[str] = None
    decision: ReviewDecision
    comments: str = Field("", max_length=20000)
    private_comments: Optional[str] = Field(None, max_length=20000)
    criteria: dict[str, Optional[int]] = Field(default_factory=dict, validate_default=True)

    @field_validator("criteria")
    @classmethod
    def _validate_criteria(cls, value: dict[str, Optional[int]]) -> dict[str, Optional[int]]:
        if value.get("overall") is None:
            raise ValueError("criteria.overall is required")
        for key, score in value.items():
            if score is not None and not CRITERIA_MIN <= score <= CRITERIA_MAX:
                raise ValueError(f"criteria.{key} must be between {CRITERIA_MIN} and {CRITERIA_MAX}")
        return value


class ResubmitRequest(BaseModel):
    document: str = Field(..., min_length=1)
    response_to_reviewers: str = Field(..., min_length=1, max_length=20000)
    changes_summary: str = Field(..., min_length=1, max_length=20000)


class CopyeditUpload(BaseModel):
    document: str = Field(..., min_length=1)
