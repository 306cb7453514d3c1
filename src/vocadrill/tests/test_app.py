"""End-to-end tests through the study engine."""
import random
from datetime import timedelta
from unittest.mock import patch

import pytest

from vocadrill.app import StudyEngine
from vocadrill.models.session_models import ReviewSnapshot, SnapshotKey
from vocadrill.models.study_models import AcquireResult, Outcome, ProgressUpdate, StudyMode
from vocadrill.services.review_curve import create_review_plan


@pytest.fixture
def engine_app(db) -> StudyEngine:
    """Create a study engine on the test session."""
    return StudyEngine(db, rng=random.Random(11))


def test_new_word_fast_correct(engine_app, make_words, now) -> None:
    """A brand-new word answered correctly and fast is scheduled for later."""
    word = make_words(1)[0]

    record = engine_app.update_word_progress(
        word.id, Outcome.CORRECT, StudyMode.FLASHCARD, response_time_ms=1500, now=now
    )

    assert record.repetitions == 1
    assert record.correct_streak == 1
    assert record.wrong_streak == 0
    assert record.next_review_at > now


def test_new_plan_is_due_in_one_hour(now) -> None:
    """A new plan starts at stage 1 due one hour out."""
    plan = create_review_plan(collection_id=5, total_words=10, started_at=now)

    assert plan.review_stage == 1
    assert plan.next_review_at == now + timedelta(hours=1)


def test_plan_completes_after_eight_reviews(engine_app, collection, now) -> None:
    """Eight completed reviews finish the plan."""
    plan = engine_app.get_or_create_review_plan(collection.id, 10, now=now)

    for _ in range(8):
        due = plan.next_review_at
        assert engine_app.is_review_due(plan, due)
        plan = engine_app.complete_review_stage(collection.id, completed_at=due)

    assert plan.review_stage == 8
    assert plan.is_completed is True
    assert plan.completed_stages == [1, 2, 3, 4, 5, 6, 7, 8]


def test_review_lock_scenario(engine_app) -> None:
    """The locking collection may continue; another one is told who blocks it."""
    engine_app.set_review_lock(3, 2)

    assert engine_app.can_start_review(3).allowed is True
    decision = engine_app.can_start_review(4)
    assert decision.allowed is False
    assert decision.lock_info.collection_id == 3

    engine_app.clear_review_lock()
    assert engine_app.can_start_review(4).allowed is True


def test_nothing_due_is_an_empty_review(engine_app) -> None:
    """Scheduling a review with nothing due returns an empty batch."""
    schedule = engine_app.schedule_review_words(collection_id=7, only_due=True)

    assert schedule.word_ids == []
    assert schedule.due_count == 0


def test_full_review_session(engine_app, collection, make_words, now) -> None:
    """Learn a batch, review it under the lock, resume it, and finish the stage."""
    words = make_words(4)
    ids = [word.id for word in words]

    flashcards = engine_app.schedule_flashcard_words(collection.id)
    assert sorted(flashcards.word_ids) == sorted(ids)
    engine_app.batch_update_word_progress(
        [ProgressUpdate(word_id, Outcome.CORRECT, StudyMode.FLASHCARD) for word_id in ids], now
    )

    plan = engine_app.get_or_create_review_plan(collection.id, len(ids), ids, now=now)
    attempt = engine_app.try_acquire_review_lock(collection.id, plan.review_stage)
    assert attempt.result is AcquireResult.ACQUIRED

    review_time = now + timedelta(days=1)
    with patch("vocadrill.services.scheduler_service.utcnow", return_value=review_time):
        review = engine_app.schedule_review_words(collection.id, word_ids=plan.learned_word_ids)
    assert sorted(review.word_ids) == sorted(ids)
    assert review.due_count == 4

    key = SnapshotKey(StudyMode.REVIEW, collection.id, plan.review_stage)
    snapshot = ReviewSnapshot(
        collection_id=collection.id,
        word_ids=review.word_ids,
        review_stage=plan.review_stage,
        review_plan_id=plan.id,
    )
    first = review.word_ids[0]
    engine_app.update_word_progress(first, Outcome.CORRECT, StudyMode.REVIEW, now=review_time)
    snapshot.word_results[first] = Outcome.CORRECT.value
    snapshot.stats.record(Outcome.CORRECT)
    snapshot.current_index = 1
    engine_app.save_snapshot(snapshot)

    resumed = engine_app.load_snapshot(key)
    assert resumed.current_index == 1
    assert resumed.word_results == {first: "correct"}
    assert resumed.stats.correct_count == 1

    plan = engine_app.complete_review_stage(collection.id, completed_at=review_time, plan_id=plan.id)
    engine_app.clear_snapshot(StudyMode.REVIEW)

    assert plan.review_stage == 2
    assert engine_app.get_review_lock() is None
    assert engine_app.load_snapshot(key) is None


def test_other_collection_waits_for_review(engine_app, word_service, collection) -> None:
    """A second collection cannot take the lock while a review is running."""
    other = word_service.create_collection("Other")
    engine_app.try_acquire_review_lock(collection.id, 1)

    attempt = engine_app.try_acquire_review_lock(other.id, 1)

    assert attempt.result is AcquireResult.HELD_BY_OTHER
    assert engine_app.review_lock_message() == (
        f"Review 1 of {collection.name} must be finished first"
    )


def test_engine_statistics_and_next_word(engine_app, collection, make_words, now) -> None:
    """The engine exposes backlog counts and the next-word helper."""
    words = make_words(2)
    engine_app.update_word_progress(words[0].id, Outcome.WRONG, StudyMode.TEST, grade=0, now=now)

    stats = engine_app.get_review_statistics(collection.id)
    assert stats.total_words == 2
    assert stats.due_words == 1

    assert engine_app.get_next_word(StudyMode.REVIEW, collection_id=collection.id) == words[0].id
    assert engine_app.schedule_test_words(collection.id, limit=1).word_ids
