"""Mastery scores and selection weights.

Every function here is pure: the same record, mode and ``now`` always give
the same score, and ``rank_words`` always gives the same order.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from vocadrill.config import settings
from vocadrill.models.models import WordProgress
from vocadrill.models.study_models import StudyMode, WordWeight
from vocadrill.models.types import utcnow
from vocadrill.services.grading import is_due_for_review, word_urgency

DEFAULT_DIFFICULTY = 3


def calculate_mastery(record: WordProgress) -> float:
    """How well a word is known, from 0 (never seen) to 1."""
    times_seen = record.times_seen or 0
    if times_seen == 0:
        return 0.0

    accuracy = (record.times_correct or 0) / times_seen
    streak_bonus = (record.correct_streak or 0) * 0.1
    streak_penalty = (record.wrong_streak or 0) * 0.15
    repetition_bonus = min((record.repetitions or 0) * 0.1, 0.3)

    fast_ratio = (record.fast_response_count or 0) / times_seen
    slow_ratio = (record.slow_response_count or 0) / times_seen
    speed_bonus = fast_ratio * 0.15 - slow_ratio * 0.1

    average = record.average_response_time
    if average is not None:
        fast = settings.grading.fast_response_ms
        slow = settings.grading.slow_response_ms
        if average <= fast:
            speed_bonus += 0.1
        elif average >= slow:
            speed_bonus -= 0.1
        else:
            speed_bonus += (1 - (average - fast) / (slow - fast)) * 0.1

    mastery = accuracy * 0.5 + streak_bonus - streak_penalty + repetition_bonus + speed_bonus

    if (record.wrong_streak or 0) >= 3:
        mastery *= 0.5

    return max(0.0, min(1.0, mastery))


def calculate_speed_weight(record: WordProgress) -> float:
    """Slow answerers need more practice: 0.1 (fast) to 1.0 (slow), 0.5 without data."""
    average = record.average_response_time
    times_seen = record.times_seen or 0
    if times_seen == 0 or average is None:
        return 0.5

    fast = settings.grading.fast_response_ms
    slow = settings.grading.slow_response_ms
    if average >= slow:
        return 1.0
    if average <= fast:
        return 0.2

    speed_weight = (average - fast) / (slow - fast)
    fast_ratio = (record.fast_response_count or 0) / times_seen
    slow_ratio = (record.slow_response_count or 0) / times_seen
    if slow_ratio > 0.5:
        return min(1.0, speed_weight + 0.3)
    if fast_ratio > 0.5:
        return max(0.1, speed_weight - 0.2)

    return max(0.1, min(1.0, speed_weight))


def calculate_difficulty_weight(record: WordProgress) -> float:
    """Declared difficulty (1-5) mapped to 0.2-1.0, raised by the error rate."""
    difficulty = record.difficulty if record.difficulty is not None else DEFAULT_DIFFICULTY
    weight = difficulty / 5

    times_seen = record.times_seen or 0
    if times_seen > 0:
        weight += (1 - (record.times_correct or 0) / times_seen) * 0.3

    return min(1.0, weight)


def calculate_word_weight(
    record: WordProgress, mode: StudyMode, now: Optional[datetime] = None
) -> WordWeight:
    """Selection weight of a word for a study mode. Higher is picked earlier.

    Words in the middle mastery band outweigh overlearned ones in every mode.
    Never-seen words get a bonus in flashcard and review mode but not in test
    mode, where they have nothing to be tested on yet.
    """
    mode = StudyMode(mode)
    now = now or utcnow()
    reasons: List[str] = []
    weight = 0.0

    if mode is StudyMode.REVIEW:
        urgency = word_urgency(record, now)
        weight += urgency * 0.5
        reasons.append(f"urgency: {urgency:.2f}")

    if is_due_for_review(record, now):
        weight += 0.3
        reasons.append("due")

    mastery = calculate_mastery(record)
    mastery_weight = (1 - mastery) * 0.4
    weight += mastery_weight
    reasons.append(f"mastery: {mastery:.2f} (weight {mastery_weight:.2f})")

    difficulty_weight = calculate_difficulty_weight(record) * 0.2
    weight += difficulty_weight
    reasons.append(f"difficulty weight: {difficulty_weight:.2f}")

    speed_weight = calculate_speed_weight(record) * 0.15
    weight += speed_weight
    if record.average_response_time is not None:
        reasons.append(
            f"response time: {record.average_response_time / 1000:.1f}s (weight {speed_weight:.2f})"
        )

    wrong_streak = record.wrong_streak or 0
    if wrong_streak > 0:
        weight += min(wrong_streak * 0.1, 0.3)
        reasons.append(f"wrong {wrong_streak} times in a row")

    unseen = (record.times_seen or 0) == 0
    if unseen and mode is not StudyMode.TEST:
        weight += 0.2
        reasons.append("new word")

    if mode is StudyMode.FLASHCARD:
        if mastery < 0.5:
            weight += 0.15
            reasons.append("flashcard: low mastery")
    elif mode is StudyMode.TEST:
        if record.difficulty is not None and record.difficulty >= 4:
            weight += 0.1
            reasons.append("test: high difficulty")
        if 0.3 <= mastery <= 0.7:
            weight += 0.1
            reasons.append("test: medium mastery")
        if unseen:
            weight -= 0.2
            reasons.append("test: never answered")

    return WordWeight(
        word_id=record.word_id,
        mastery=mastery,
        weight=max(0.0, weight),
        reasons=reasons,
    )


def selection_key(word_weight: WordWeight, record: WordProgress) -> Tuple[float, float, int]:
    """Sort key: weight descending, then least recently seen, then word id."""
    last_seen = record.last_reviewed_at.timestamp() if record.last_reviewed_at else float("-inf")
    return (-word_weight.weight, last_seen, word_weight.word_id)


def rank_words(
    records: Iterable[WordProgress], mode: StudyMode, now: Optional[datetime] = None
) -> List[WordWeight]:
    """Weigh every record and return the weights in selection order."""
    now = now or utcnow()
    weighted = [(calculate_word_weight(record, mode, now), record) for record in records]
    weighted.sort(key=lambda pair: selection_key(*pair))
    return [word_weight for word_weight, _ in weighted]


def sort_words_by_weight(
    records: Iterable[WordProgress],
    mode: StudyMode,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[int]:
    """Word ids ordered by selection weight, cut to limit when it is positive."""
    word_ids = [word_weight.word_id for word_weight in rank_words(records, mode, now)]
    if limit is not None and limit > 0:
        return word_ids[:limit]
    return word_ids
