"""SM-2 style mastery grading.

Answers arrive as an outcome (correct, wrong or skip), an optional explicit
0-5 grade and an optional response latency. The outcome and latency are
folded into a single SM-2 quality grade which then drives the ease factor,
the interval and the repetition counter of the word's mastery record.

Grades:
    0  forgotten completely
    1  wrong, but recognised once the answer was shown
    2  wrong, hard
    3  correct with effort
    4  correct
    5  perfect recall

Nothing in this module touches the database; persisting the graded record is
the caller's job.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from vocadrill.config import settings
from vocadrill.models.models import WordProgress
from vocadrill.models.study_models import Outcome
from vocadrill.models.types import utcnow

logger = logging.getLogger(__name__)

MIN_GRADE = 0
MAX_GRADE = 5
PASSING_GRADE = 3


@dataclass(frozen=True)
class SM2Result:
    """New SM-2 parameters after one graded review."""
    ease_factor: float
    interval_days: int
    repetitions: int


def _check_grade(grade: int) -> int:
    if not MIN_GRADE <= grade <= MAX_GRADE:
        raise ValueError(f"Grade must be between {MIN_GRADE} and {MAX_GRADE}, got {grade}")
    return grade


def adjust_grade_by_speed(base_grade: int, response_time_ms: Optional[int] = None) -> int:
    """Raise a fast correct grade by one, lower a slow one by one.

    Slow wrong answers are lowered as well. A correct grade never drops
    below the passing grade.
    """
    _check_grade(base_grade)
    if response_time_ms is None or response_time_ms <= 0:
        return base_grade

    fast = settings.grading.fast_response_ms
    slow = settings.grading.slow_response_ms

    if base_grade >= PASSING_GRADE:
        if response_time_ms <= fast:
            return min(MAX_GRADE, base_grade + 1)
        if response_time_ms >= slow:
            return max(PASSING_GRADE, base_grade - 1)
    elif response_time_ms >= slow:
        return max(MIN_GRADE, base_grade - 1)

    return base_grade


def calculate_sm2(
    ease_factor: float, interval_days: int, repetitions: int, grade: int
) -> SM2Result:
    """Apply one SM-2 step."""
    _check_grade(grade)

    if grade < PASSING_GRADE:
        repetitions = 0
        if grade == 0:
            interval_days = 0
        else:
            interval_days = max(1, math.floor(interval_days * 0.5))
    else:
        repetitions += 1
        if repetitions == 1:
            interval_days = 1
        elif repetitions == 2:
            interval_days = 6
        else:
            interval_days = round(interval_days * ease_factor)

    # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    delta = 0.1 - (MAX_GRADE - grade) * (0.08 + (MAX_GRADE - grade) * 0.02)
    ease_factor = max(settings.grading.min_ease_factor, ease_factor + delta)

    return SM2Result(
        ease_factor=round(ease_factor, 2),
        interval_days=max(0, interval_days),
        repetitions=max(0, repetitions),
    )


def next_review_date(interval_days: int, now: Optional[datetime] = None) -> datetime:
    """Return the due time interval_days after now."""
    return (now or utcnow()) + timedelta(days=interval_days)


def is_due_for_review(record: WordProgress, now: Optional[datetime] = None) -> bool:
    """A word without a due time is always due."""
    if record.next_review_at is None:
        return True
    return (now or utcnow()) >= record.next_review_at


def word_urgency(record: WordProgress, now: Optional[datetime] = None) -> float:
    """Urgency of a single word in [0.1, 1.0]; overdue or unscheduled words score 1."""
    if record.next_review_at is None:
        return 1.0

    diff_days = (record.next_review_at - (now or utcnow())).total_seconds() / 86400
    if diff_days <= 0:
        return 1.0
    if diff_days > 7:
        return 0.1
    return max(0.1, 1.0 - diff_days / 7)


def new_progress_record(
    word_id: int,
    collection_id: int,
    difficulty: Optional[int] = None,
    now: Optional[datetime] = None,
) -> WordProgress:
    """Build the default mastery record of a word that has never been answered.

    This is the only place default values are spelled out. The record is not
    added to any session.
    """
    now = now or utcnow()
    return WordProgress(
        word_id=word_id,
        collection_id=collection_id,
        ease_factor=settings.grading.default_ease_factor,
        interval_days=0,
        repetitions=0,
        difficulty=difficulty,
        times_seen=0,
        times_correct=0,
        correct_streak=0,
        wrong_streak=0,
        fast_response_count=0,
        slow_response_count=0,
        average_response_time=None,
        last_response_time=None,
        last_result=None,
        last_mode=None,
        last_reviewed_at=None,
        next_review_at=None,
        created_at=now,
        updated_at=now,
    )


def _record_response_time(record: WordProgress, response_time_ms: Optional[int]) -> None:
    if response_time_ms is None or response_time_ms <= 0:
        return

    record.last_response_time = response_time_ms
    if record.average_response_time is None:
        record.average_response_time = response_time_ms
    else:
        weight = settings.grading.response_time_weight
        record.average_response_time = round(
            record.average_response_time * (1 - weight) + response_time_ms * weight
        )

    if response_time_ms < settings.grading.fast_response_ms:
        record.fast_response_count = (record.fast_response_count or 0) + 1
    elif response_time_ms > settings.grading.slow_response_ms:
        record.slow_response_count = (record.slow_response_count or 0) + 1


def _apply_sm2(record: WordProgress, grade: int, now: datetime) -> None:
    result = calculate_sm2(record.ease_factor, record.interval_days, record.repetitions, grade)
    record.ease_factor = result.ease_factor
    record.interval_days = result.interval_days
    record.repetitions = result.repetitions
    record.next_review_at = next_review_date(result.interval_days, now)


def grade_answer(
    record: WordProgress,
    outcome: Outcome,
    response_time_ms: Optional[int] = None,
    grade: Optional[int] = None,
    now: Optional[datetime] = None,
) -> WordProgress:
    """Apply one answer to a mastery record and return it.

    The record is updated in place. An explicit grade on a correct answer is
    raised to at least the passing grade so that a correct answer always
    advances the repetition counter. Raises ValueError for an unknown outcome
    or an out-of-range grade.
    """
    outcome = Outcome(outcome)
    if grade is not None:
        _check_grade(grade)
    now = now or utcnow()

    record.times_seen += 1
    _record_response_time(record, response_time_ms)

    if outcome is Outcome.SKIP:
        record.last_result = Outcome.SKIP.value
    elif outcome is Outcome.CORRECT:
        record.times_correct += 1
        record.correct_streak += 1
        record.wrong_streak = 0
        record.last_result = Outcome.CORRECT.value

        if grade is None and record.repetitions == 0:
            record.interval_days = 1
            record.repetitions = 1
            record.next_review_at = next_review_date(1, now)
        else:
            base_grade = max(PASSING_GRADE, grade if grade is not None else PASSING_GRADE)
            _apply_sm2(record, adjust_grade_by_speed(base_grade, response_time_ms), now)
    else:
        record.wrong_streak += 1
        record.correct_streak = 0
        record.last_result = Outcome.WRONG.value

        reset_grade = 0 if grade is not None and grade < 2 else 1
        _apply_sm2(record, adjust_grade_by_speed(reset_grade, response_time_ms), now)

    record.updated_at = now
    logger.debug(
        "Graded word %s as %s: reps=%d ef=%.2f interval=%d",
        record.word_id,
        outcome.value,
        record.repetitions,
        record.ease_factor,
        record.interval_days,
    )
    return record
