from fastapi import APIRouter, Depends

from journalflow.api.v1.deps import get_review_service
from journalflow.core.roles import get_current_profile
from journalflow.models.submission import Review
from journalflow.models.user import UserProfile
from journalflow.schemas.workflow import ReviewPayload
from journalflow.services.review_service import ReviewService, RoundStatus

router = APIRouter(prefix="/submissions", tags=["Reviews"])


@router.post("/{submission_id}/reviews", response_model=Review)
async def submit_review(
    submission_id: str,
    payload: ReviewPayload,
    profile: UserProfile = Depends(get_current_profile),
    reviews: ReviewService = Depends(get_review_service),
):
    """
    提交审稿意见（只写一次）。

    中文注释: reviewer_id 缺省为当前用户；编辑/管理员可显式传 reviewer_id 代审。
    """
    return reviews.submit_review(submission_id, payload, profile)


@router.get("/{submission_id}/reviews/status", response_model=RoundStatus)
async def review_round_status(
    submission_id: str,
    profile: UserProfile = Depends(get_current_profile),
    reviews: ReviewService = Depends(get_review_service),
):
    """编辑查看本轮审稿进度（完成数、待完成数、逾期/即将到期审稿人）"""
    return reviews.round_status(submission_id, profile)
