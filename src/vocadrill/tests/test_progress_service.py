"""Tests for the mastery record write path."""
from datetime import timedelta

import pytest
from prometheus_client import REGISTRY

from vocadrill.exceptions import WordNotFoundError
from vocadrill.models.models import WordProgress
from vocadrill.models.study_models import Outcome, ProgressUpdate, StudyMode
from vocadrill.services.progress_service import ProgressService
from vocadrill.services.review_lock import ReviewLockService


@pytest.fixture
def progress_service(db) -> ProgressService:
    """Create a progress service instance."""
    return ProgressService(db)


def graded(outcome: str, mode: str) -> float:
    return (
        REGISTRY.get_sample_value(
            "vocadrill_answers_graded_total", {"outcome": outcome, "mode": mode}
        )
        or 0.0
    )


def test_first_answer_creates_record(progress_service, db, make_words, now) -> None:
    """Test that answering a new word creates and stores its mastery record."""
    word = make_words(1, difficulty=4)[0]
    before = graded("correct", "flashcard")

    record = progress_service.update_word_progress(
        word.id, Outcome.CORRECT, StudyMode.FLASHCARD, response_time_ms=1200, now=now
    )

    assert record.repetitions == 1
    assert record.correct_streak == 1
    assert record.wrong_streak == 0
    assert record.next_review_at > now
    assert record.last_mode == "flashcard"
    assert record.last_reviewed_at == now
    assert record.collection_id == word.collection_id
    assert record.difficulty == 4
    assert db.query(WordProgress).filter(WordProgress.word_id == word.id).count() == 1
    assert graded("correct", "flashcard") == before + 1


def test_answers_accumulate(progress_service, make_words, now) -> None:
    """Test that later answers update the same record."""
    word = make_words(1)[0]
    progress_service.update_word_progress(word.id, Outcome.CORRECT, StudyMode.FLASHCARD, now=now)
    record = progress_service.update_word_progress(
        word.id, Outcome.WRONG, StudyMode.TEST, now=now + timedelta(days=1)
    )

    assert record.times_seen == 2
    assert record.times_correct == 1
    assert record.repetitions == 0
    assert record.wrong_streak == 1
    assert record.last_mode == "test"
    assert progress_service.get_progress(word.id) is record


def test_answer_is_logged(progress_service, make_words, now) -> None:
    """Test that every graded answer leaves a review log row."""
    word = make_words(1)[0]
    progress_service.update_word_progress(
        word.id, Outcome.CORRECT, StudyMode.REVIEW, grade=5, response_time_ms=900, now=now
    )
    progress_service.update_word_progress(
        word.id, Outcome.SKIP, StudyMode.REVIEW, now=now + timedelta(minutes=1)
    )

    logs = progress_service.get_review_logs(word.id)

    assert [log.result for log in logs] == ["correct", "skip"]
    assert logs[0].grade == 5
    assert logs[0].response_time == 900
    assert logs[0].mode == "review"
    assert logs[0].interval_days_after == 1


def test_unknown_word_raises(progress_service, now) -> None:
    """Test that answering a word that does not exist is an error."""
    with pytest.raises(WordNotFoundError) as exc_info:
        progress_service.update_word_progress(999, Outcome.CORRECT, StudyMode.TEST, now=now)
    assert exc_info.value.word_id == 999


def test_invalid_mode_raises(progress_service, make_words, now) -> None:
    """Test that an unknown study mode is rejected."""
    word = make_words(1)[0]
    with pytest.raises(ValueError):
        progress_service.update_word_progress(word.id, Outcome.CORRECT, "dictation", now=now)


def test_rejected_grade_stores_nothing(progress_service, db, make_words, now) -> None:
    """Test that an out-of-range grade leaves no record behind for a later commit."""
    word = make_words(1)[0]
    with pytest.raises(ValueError):
        progress_service.update_word_progress(
            word.id, Outcome.CORRECT, StudyMode.TEST, grade=9, now=now
        )

    ReviewLockService(db).set_lock(word.collection_id, 1, now)

    assert db.query(WordProgress).count() == 0
    assert progress_service.get_progress(word.id) is None


def test_batch_update_preserves_order(progress_service, make_words, now) -> None:
    """Test that a batch is applied in input order."""
    first, second = make_words(2)
    updates = [
        ProgressUpdate(first.id, Outcome.CORRECT, StudyMode.REVIEW),
        ProgressUpdate(second.id, Outcome.WRONG, StudyMode.REVIEW),
        ProgressUpdate(first.id, Outcome.WRONG, StudyMode.REVIEW, response_time_ms=11000),
    ]

    results = progress_service.batch_update_word_progress(updates, now)

    assert [record.word_id for record in results] == [first.id, second.id, first.id]
    assert results[0] is results[2]
    assert results[2].times_seen == 2
    assert results[2].last_result == "wrong"
    assert results[2].slow_response_count == 1


def test_get_records_for_words_defaults_without_saving(
    progress_service, db, make_words, make_progress, now
) -> None:
    """Test that reading a pool does not write default records."""
    stored, fresh = make_words(2)
    make_progress(stored, times_seen=3, times_correct=2)

    records = progress_service.get_records_for_words([fresh, stored], now)

    assert [record.word_id for record in records] == [fresh.id, stored.id]
    assert records[0].times_seen == 0
    assert records[0].ease_factor == 2.5
    assert records[1].times_seen == 3
    assert db.query(WordProgress).count() == 1


def test_ensure_progress_exists(progress_service, db, make_words) -> None:
    """Test that a default record is stored on demand."""
    word = make_words(1)[0]

    record = progress_service.ensure_progress_exists(word.id)

    assert record.times_seen == 0
    assert db.query(WordProgress).count() == 1
    assert progress_service.ensure_progress_exists(word.id) is record
    assert progress_service.ensure_progress_exists(12345) is None
