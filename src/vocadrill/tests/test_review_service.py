"""Tests for review plan persistence."""
from datetime import timedelta

import pytest
from prometheus_client import REGISTRY

from vocadrill.exceptions import CollectionNotFoundError, NotFoundError, ReviewPlanNotFoundError
from vocadrill.models.models import ReviewPlan
from vocadrill.services.review_service import ReviewService


@pytest.fixture
def review_service(db) -> ReviewService:
    """Create a review service instance."""
    return ReviewService(db)


def stages_completed() -> float:
    return REGISTRY.get_sample_value("vocadrill_review_stages_completed_total") or 0.0


def test_get_or_create_review_plan(review_service, collection, now) -> None:
    """Test that a collection gets one plan which is then reused."""
    plan = review_service.get_or_create_review_plan(collection.id, 10, now=now)

    assert plan.id is not None
    assert plan.review_stage == 1
    assert plan.next_review_at == now + timedelta(hours=1)
    assert review_service.get_or_create_review_plan(collection.id, 10, now=now).id == plan.id
    assert review_service.get_review_plan(collection.id).id == plan.id


def test_plan_for_missing_collection_is_not_found(review_service, db) -> None:
    """Test that a missing collection is reported as not found, not as a storage failure."""
    with pytest.raises(CollectionNotFoundError) as exc_info:
        review_service.get_or_create_review_plan(5, 10)

    assert isinstance(exc_info.value, NotFoundError)
    assert exc_info.value.details == {"collection_id": 5}
    assert db.query(ReviewPlan).count() == 0


def test_cohort_plans_match_by_word_set(review_service, collection, now) -> None:
    """Test that cohorts get their own plan, matched regardless of order."""
    whole = review_service.get_or_create_review_plan(collection.id, 10, now=now)
    cohort = review_service.get_or_create_review_plan(collection.id, 3, [3, 1, 2], now=now)

    assert cohort.id != whole.id
    assert cohort.learned_word_ids == [1, 2, 3]
    assert cohort.total_words == 3

    again = review_service.get_or_create_review_plan(collection.id, 3, [2, 3, 1, 1], now=now)
    assert again.id == cohort.id

    other = review_service.get_or_create_review_plan(collection.id, 2, [4, 5], now=now)
    assert other.id not in (whole.id, cohort.id)
    assert len(review_service.get_review_plans_by_collection(collection.id)) == 3


def test_complete_review_stage(review_service, db, collection, now) -> None:
    """Test that completing a stage advances and persists the plan."""
    plan = review_service.get_or_create_review_plan(collection.id, 10, now=now)
    before = stages_completed()

    completed_at = now + timedelta(hours=2)
    review_service.complete_review_stage(collection.id, completed_at)

    stored = db.query(ReviewPlan).filter(ReviewPlan.id == plan.id).one()
    assert stored.review_stage == 2
    assert stored.completed_stages == [1]
    assert stored.next_review_at == completed_at + timedelta(days=1)
    assert stages_completed() == before + 1


def test_complete_specific_plan(review_service, collection, now) -> None:
    """Test completing a cohort plan by id leaves the other plans alone."""
    whole = review_service.get_or_create_review_plan(collection.id, 10, now=now)
    cohort = review_service.get_or_create_review_plan(collection.id, 2, [1, 2], now=now)

    review_service.complete_review_stage(collection.id, now, plan_id=cohort.id)

    assert cohort.review_stage == 2
    assert whole.review_stage == 1


def test_complete_missing_plan_raises(review_service, word_service, collection, now) -> None:
    """Test that advancing a plan that does not exist is an error."""
    with pytest.raises(ReviewPlanNotFoundError):
        review_service.complete_review_stage(collection.id, now)

    plan = review_service.get_or_create_review_plan(collection.id, 1, now=now)
    other = word_service.create_collection("Other")
    with pytest.raises(ReviewPlanNotFoundError) as exc_info:
        review_service.complete_review_stage(other.id, now, plan_id=plan.id)
    assert exc_info.value.details == {"collection_id": other.id, "plan_id": plan.id}


def test_completed_plan_is_not_counted_again(review_service, collection, now) -> None:
    """Test that finishing an already finished plan does not count a stage."""
    review_service.get_or_create_review_plan(collection.id, 1, now=now)
    for _ in range(8):
        review_service.complete_review_stage(collection.id, now)
    before = stages_completed()

    plan = review_service.complete_review_stage(collection.id, now)

    assert plan.is_completed
    assert plan.completed_stages == [1, 2, 3, 4, 5, 6, 7, 8]
    assert stages_completed() == before


def test_get_due_review_plans(review_service, word_service, now) -> None:
    """Test that only unfinished due plans are returned, earliest first."""
    late = word_service.create_collection("Late")
    early = word_service.create_collection("Early")
    fresh = word_service.create_collection("Fresh")
    finished = word_service.create_collection("Finished")

    review_service.get_or_create_review_plan(late.id, 5, now=now - timedelta(hours=2))
    review_service.get_or_create_review_plan(early.id, 5, now=now - timedelta(days=2))
    review_service.get_or_create_review_plan(fresh.id, 5, now=now)
    review_service.get_or_create_review_plan(finished.id, 5, now=now - timedelta(days=500))
    for _ in range(8):
        review_service.complete_review_stage(finished.id, now - timedelta(days=400))

    due = review_service.get_due_review_plans(now)

    assert [plan.collection_id for plan in due] == [early.id, late.id]
    assert len(review_service.get_all_review_plans()) == 4


def test_delete_review_plans(review_service, collection, now) -> None:
    """Test removing the plans of a collection."""
    review_service.get_or_create_review_plan(collection.id, 5, now=now)
    review_service.get_or_create_review_plan(collection.id, 2, [1, 2], now=now)

    assert review_service.delete_review_plans(collection.id) == 2
    assert review_service.get_review_plan(collection.id) is None
