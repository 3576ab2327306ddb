from typing import Optional

from fastapi import APIRouter, Depends, Query

from journalflow.api.v1.deps import get_lifecycle_service, get_visibility_service
from journalflow.core.roles import get_current_profile
from journalflow.models.submission import PeerReviewType, Submission, SubmissionStatus
from journalflow.models.user import UserProfile
from journalflow.schemas.workflow import (
    AssignRequest,
    CopyeditUpload,
    DeskDecisionRequest,
    EditorDecisionRequest,
    ResubmitRequest,
    SendToReviewRequest,
    SubmissionCreate,
    SubmissionPatch,
)
from journalflow.services.lifecycle_service import LifecycleService
from journalflow.services.visibility_service import VisibilityService

router = APIRouter(prefix="/submissions", tags=["Submissions"])


@router.get("", response_model=list[Submission])
async def list_submissions(
    status: Optional[SubmissionStatus] = Query(None),
    peer_review_type: Optional[PeerReviewType] = Query(None),
    mine: bool = Query(False, description="编辑：仅返回本人负责（editor_id）的稿件"),
    profile: UserProfile = Depends(get_current_profile),
    visibility: VisibilityService = Depends(get_visibility_service),
):
    """按角色过滤的稿件列表"""
    return visibility.list_for_actor(profile, status=status, peer_review_type=peer_review_type, mine=mine)


@router.get("/{submission_id}", response_model=Submission)
async def get_submission(
    submission_id: str,
    profile: UserProfile = Depends(get_current_profile),
    visibility: VisibilityService = Depends(get_visibility_service),
):
    return visibility.get_for_actor(submission_id, profile)


@router.post("", response_model=Submission, status_code=201)
async def create_submission(
    payload: SubmissionCreate,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    """作者新建草稿（status=draft）"""
    return lifecycle.create_draft(payload, profile)


@router.put("/{submission_id}", response_model=Submission)
async def update_submission(
    submission_id: str,
    patch: SubmissionPatch,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    return lifecycle.update(submission_id, patch, profile)


@router.post("/{submission_id}/submit", response_model=Submission)
async def submit_for_review(
    submission_id: str,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    """draft -> submitted"""
    return lifecycle.submit(submission_id, profile)


@router.post("/{submission_id}/assign", response_model=Submission)
async def assign(
    submission_id: str,
    payload: AssignRequest,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    """
    替换指派集合（reviewer / copyeditor / publisher）。

    中文注释: submitted 状态下指派审稿人会同时进入 under_review。
    """
    return lifecycle.assignments.assign(submission_id, payload.role, payload.user_ids, profile)


@router.post("/{submission_id}/send-to-review", response_model=Submission)
async def send_to_review(
    submission_id: str,
    payload: SendToReviewRequest,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    return lifecycle.send_to_review(submission_id, payload.reviewer_ids, profile)


@router.post("/{submission_id}/desk-decision", response_model=Submission)
async def desk_decision(
    submission_id: str,
    payload: DeskDecisionRequest,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    return lifecycle.desk_decision(submission_id, payload.decision, profile, payload.comments)


@router.post("/{submission_id}/decision", response_model=Submission)
async def record_decision(
    submission_id: str,
    payload: EditorDecisionRequest,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    """审稿后决定：accept / reject / revision"""
    return lifecycle.record_decision(submission_id, payload.decision, profile, payload.comments)


@router.post("/{submission_id}/resubmit", response_model=Submission)
async def resubmit(
    submission_id: str,
    payload: ResubmitRequest,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    return lifecycle.resubmit(submission_id, payload, profile)


@router.post("/{submission_id}/copyedit", response_model=Submission)
async def upload_copyedit(
    submission_id: str,
    payload: CopyeditUpload,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    return lifecycle.upload_copyedit(submission_id, payload, profile)


@router.post("/{submission_id}/publish", response_model=Submission)
async def publish(
    submission_id: str,
    profile: UserProfile = Depends(get_current_profile),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
):
    return lifecycle.publish(submission_id, profile)
