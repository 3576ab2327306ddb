import pytest
from pydantic import ValidationError

from journalflow.core.errors import InvalidTransition, Unauthorized
from journalflow.models.submission import (
    DecisionStatus,
    ManuscriptVersion,
    ReviewDecision,
    SubmissionStatus,
)
from journalflow.schemas.workflow import ResubmitRequest, ReviewPayload
from journalflow.services.revision_service import apply_resubmission


def _request_revision(lifecycle, users, submission_id, comments="Please expand the evaluation"):
    return lifecycle.record_decision(submission_id, "revision", users["E1"], comments)


def _resubmit_payload(document: str) -> ResubmitRequest:
    return ResubmitRequest(
        document=document,
        response_to_reviewers="Addressed all points",
        changes_summary="New experiments in section 5",
    )


def test_revision_request_needs_comments(lifecycle, users, under_review):
    with pytest.raises(InvalidTransition):
        _request_revision(lifecycle, users, under_review.id, comments="   ")


def test_revision_request_keeps_reviews(lifecycle, review_service, users, under_review, clock):
    review_service.submit_review(
        under_review.id,
        ReviewPayload(decision=ReviewDecision.MAJOR_REVISIONS, comments="More baselines", criteria={"overall": 2}),
        users["R1"],
    )
    out = _request_revision(lifecycle, users, under_review.id)

    assert out.status == SubmissionStatus.REVISION_REQUIRED
    assert out.decision.status == DecisionStatus.REVISION
    assert out.decision.comments == "Please expand the evaluation"
    assert out.decision.date == clock.now
    assert [r.reviewer_id for r in out.reviews] == ["R1", "R2"]
    assert out.review_for("R1").comments == "More baselines"


def test_resubmit_preserves_previous_document(lifecycle, users, under_review, clock):
    _request_revision(lifecycle, users, under_review.id)
    clock.advance(days=20)

    out = lifecycle.resubmit(under_review.id, _resubmit_payload("manuscripts/gnn-v2.pdf"), users["A1"])

    assert out.status == SubmissionStatus.UNDER_REVIEW
    assert out.document == "manuscripts/gnn-v2.pdf"
    assert out.resubmission_details.previous_version == "manuscripts/gnn-v1.pdf"
    assert out.resubmission_details.resubmission_date == clock.now
    assert out.resubmission_details.response_to_reviewers == "Addressed all points"
    assert out.updated_date == clock.now
    assert out.manuscript_version == ManuscriptVersion.REVIEWING
    assert out.revision_round == 1


def test_second_cycle_points_at_first_resubmission(lifecycle, users, under_review):
    _request_revision(lifecycle, users, under_review.id)
    lifecycle.resubmit(under_review.id, _resubmit_payload("manuscripts/gnn-v2.pdf"), users["A1"])
    _request_revision(lifecycle, users, under_review.id, comments="Almost there")
    out = lifecycle.resubmit(under_review.id, _resubmit_payload("manuscripts/gnn-v3.pdf"), users["A1"])

    assert out.document == "manuscripts/gnn-v3.pdf"
    assert out.resubmission_details.previous_version == "manuscripts/gnn-v2.pdf"
    assert out.decision.comments == "Almost there"
    assert out.revision_round == 2
    assert out.manuscript_version == ManuscriptVersion.REVIEWING


def test_resubmit_guards(lifecycle, store, users, under_review):
    with pytest.raises(InvalidTransition):
        lifecycle.resubmit(under_review.id, _resubmit_payload("x.pdf"), users["A1"])

    _request_revision(lifecycle, users, under_review.id)
    with pytest.raises(Unauthorized) as exc:
        lifecycle.resubmit(under_review.id, _resubmit_payload("x.pdf"), users["A2"])
    assert exc.value.detail == "Only the corresponding author may resubmit"
    with pytest.raises(Unauthorized):
        lifecycle.resubmit(under_review.id, _resubmit_payload("x.pdf"), users["E1"])

    current = store.fetch(under_review.id)
    assert current.status == SubmissionStatus.REVISION_REQUIRED
    assert current.document == "manuscripts/gnn-v1.pdf"
    assert current.resubmission_details is None


def test_resubmit_payload_requires_all_fields():
    with pytest.raises(ValidationError):
        ResubmitRequest(document="", response_to_reviewers="a", changes_summary="b")
    with pytest.raises(ValidationError):
        ResubmitRequest(document="v2.pdf", response_to_reviewers="a")


def test_apply_resubmission_never_moves_version_backwards(lifecycle, users, under_review, clock):
    _request_revision(lifecycle, users, under_review.id)
    current = lifecycle.store.fetch(under_review.id)
    current.manuscript_version = ManuscriptVersion.COPY_EDITING

    out = apply_resubmission(current, _resubmit_payload("v9.pdf"), now=clock.now)
    assert out.manuscript_version == ManuscriptVersion.COPY_EDITING
