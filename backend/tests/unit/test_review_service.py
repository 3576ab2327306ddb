from datetime import timedelta

import pytest
from pydantic import ValidationError

from journalflow.core.errors import AlreadySubmitted, InvalidTransition, Unauthorized
from journalflow.models.submission import ReviewDecision
from journalflow.schemas.workflow import ReviewPayload
from journalflow.services.review_service import (
    completed_count,
    is_due_soon,
    is_overdue,
    is_round_complete,
    merge_criteria,
    pending_count,
    round_summary,
)


def _payload(**kwargs) -> ReviewPayload:
    data = {"decision": ReviewDecision.ACCEPT, "criteria": {"overall": 4}}
    data.update(kwargs)
    return ReviewPayload(**data)


def test_submit_review_completes_and_defaults_criteria(review_service, store, users, under_review, clock):
    clock.advance(days=5)
    review = review_service.submit_review(
        under_review.id,
        _payload(
            comments="Clear and convincing",
            private_comments="Check the baseline numbers",
            criteria={"overall": 4, "clarity": 5, "reproducibility": 3},
        ),
        users["R1"],
    )

    assert review.completed is True
    assert review.submitted_date == clock.now
    assert review.decision == ReviewDecision.ACCEPT
    assert review.private_comments == "Check the baseline numbers"
    assert review.criteria == {
        "methodology": 0,
        "relevance": 0,
        "clarity": 5,
        "originality": 0,
        "overall": 4,
        "reproducibility": 3,
    }
    stored = store.fetch(under_review.id)
    assert stored.review_for("R1") == review
    assert stored.review_for("R2").completed is False


def test_reviews_are_write_once(review_service, store, users, under_review):
    first = review_service.submit_review(under_review.id, _payload(comments="v1"), users["R1"])
    version = store.fetch(under_review.id).row_version

    with pytest.raises(AlreadySubmitted):
        review_service.submit_review(
            under_review.id,
            _payload(decision=ReviewDecision.REJECT, comments="v2"),
            users["R1"],
        )

    stored = store.fetch(under_review.id)
    assert stored.review_for("R1") == first
    assert stored.row_version == version


def test_unassigned_reviewer_is_rejected(review_service, users, under_review):
    with pytest.raises(Unauthorized) as exc:
        review_service.submit_review(under_review.id, _payload(), users["R3"])
    assert "assigned reviewer" in exc.value.detail


def test_non_reviewer_roles_cannot_review(review_service, users, under_review):
    with pytest.raises(Unauthorized):
        review_service.submit_review(under_review.id, _payload(), users["A1"])
    # 编辑未指定 reviewer_id 时视为本人提交，编辑本人不是审稿人
    with pytest.raises(Unauthorized):
        review_service.submit_review(under_review.id, _payload(), users["E1"])


def test_editor_submits_on_behalf_of_reviewer(review_service, users, under_review):
    review = review_service.submit_review(under_review.id, _payload(reviewer_id="R2"), users["E1"])
    assert review.reviewer_id == "R2"
    assert review.completed is True

    with pytest.raises(Unauthorized):
        review_service.submit_review(under_review.id, _payload(reviewer_id="R2"), users["R1"])


def test_overdue_review_is_still_submittable(review_service, users, under_review, clock):
    clock.advance(days=30)
    review = review_service.submit_review(under_review.id, _payload(), users["R2"])
    assert review.completed is True


def test_pending_review_closed_after_decision(lifecycle, review_service, users, under_review):
    lifecycle.record_decision(under_review.id, "revision", users["E1"], "Please address comments")
    with pytest.raises(InvalidTransition):
        review_service.submit_review(under_review.id, _payload(), users["R2"])


def test_payload_requires_overall_in_range():
    with pytest.raises(ValidationError):
        ReviewPayload(decision=ReviewDecision.ACCEPT)
    with pytest.raises(ValidationError):
        ReviewPayload(decision=ReviewDecision.ACCEPT, criteria={"clarity": 3})
    with pytest.raises(ValidationError):
        ReviewPayload(decision=ReviewDecision.ACCEPT, criteria={"overall": None})
    with pytest.raises(ValidationError):
        ReviewPayload(decision=ReviewDecision.ACCEPT, criteria={"overall": 6})
    with pytest.raises(ValidationError):
        ReviewPayload(decision="maybe", criteria={"overall": 3})


def test_merge_criteria_fills_missing_with_zero():
    assert merge_criteria({"overall": 2, "clarity": None}) == {
        "methodology": 0,
        "relevance": 0,
        "clarity": 0,
        "originality": 0,
        "overall": 2,
    }


def test_derived_round_queries(review_service, users, under_review, clock):
    now = clock.now
    assert is_round_complete(under_review) is False
    assert pending_count(under_review) == 2
    assert completed_count(under_review) == 0

    review_service.submit_review(under_review.id, _payload(), users["R1"])
    after_one = review_service.store.fetch(under_review.id)
    assert pending_count(after_one) == 1
    assert completed_count(after_one) == 1
    assert is_round_complete(after_one) is False

    review_service.submit_review(under_review.id, _payload(), users["R2"])
    after_two = review_service.store.fetch(under_review.id)
    assert is_round_complete(after_two) is True

    pending = under_review.review_for("R1")
    assert is_overdue(pending, now=now) is False
    assert is_due_soon(pending, now=now) is False
    assert is_due_soon(pending, now=now + timedelta(days=8)) is True
    assert is_overdue(pending, now=now + timedelta(days=15)) is True
    done = after_two.review_for("R1")
    assert is_overdue(done, now=now + timedelta(days=15)) is False


def test_round_summary(review_service, users, under_review, clock):
    review_service.submit_review(under_review.id, _payload(), users["R1"])
    clock.advance(days=15)

    status = review_service.round_status(under_review.id, users["E1"])
    assert status.total == 2
    assert status.completed == 1
    assert status.pending == 1
    assert status.complete is False
    assert status.overdue == ["R2"]
    assert status.due_soon == ["R2"]

    summary = round_summary(under_review, now=clock.now - timedelta(days=15))
    assert summary.overdue == []


def test_round_status_is_editorial_only(review_service, users, under_review):
    with pytest.raises(Unauthorized):
        review_service.round_status(under_review.id, users["R1"])
