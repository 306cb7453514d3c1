"""Word selection for the three study modes.

Each scheduler loads the candidate pool from the word store, pairs every word
with its mastery record (an unsaved default for words never answered),
filters the pool by its mode's rules and orders it. An empty pool is a normal
result, not an error.
"""
import logging
import random
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from vocadrill.config import settings
from vocadrill.models.models import Word, WordProgress
from vocadrill.models.study_models import (
    FlashcardSchedule,
    ReviewSchedule,
    ReviewStatistics,
    StudyMode,
    TestQuestion,
    TestSchedule,
)
from vocadrill.models.types import utcnow
from vocadrill.monitoring import scheduling_duration, words_scheduled
from vocadrill.services.grading import is_due_for_review, word_urgency
from vocadrill.services.progress_service import ProgressService
from vocadrill.services.weight_calculator import (
    DEFAULT_DIFFICULTY,
    calculate_mastery,
    calculate_word_weight,
    rank_words,
)
from vocadrill.services.word_service import WordService

logger = logging.getLogger(__name__)

# Words answered more often than this with high mastery are overlearned
FLASHCARD_OVERLEARNED_SEEN = 5
TEST_TOO_EASY_MASTERY = 0.9
TEST_TOO_EASY_SEEN = 10
TEST_TOO_HARD_MASTERY = 0.1
TEST_TOO_HARD_WRONG_STREAK = 5
STATISTICS_URGENT = 0.7
UPCOMING_DAYS = 3


def _cap(word_ids: List[int], limit: Optional[int]) -> List[int]:
    if limit is not None and limit > 0:
        return word_ids[:limit]
    return word_ids


def next_in_order(word_ids: Sequence[int], current_word_id: Optional[int] = None) -> Optional[int]:
    """The id following current_word_id, or the first id when there is none."""
    if not word_ids:
        return None
    if current_word_id is not None and current_word_id in word_ids:
        index = list(word_ids).index(current_word_id)
        if index < len(word_ids) - 1:
            return word_ids[index + 1]
    return word_ids[0]


class _PoolScheduler:
    """Shared candidate-pool loading."""

    mode: StudyMode

    def __init__(self, db: Session):
        self.db = db
        self.word_service = WordService(db)
        self.progress_service = ProgressService(db)

    def _load_words(
        self, collection_id: Optional[int], word_ids: Optional[Iterable[int]] = None
    ) -> List[Word]:
        if word_ids is not None:
            words = self.word_service.get_words(word_ids)
            if collection_id is not None:
                words = [word for word in words if word.collection_id == collection_id]
            return words
        return self.word_service.get_words_by_collection(collection_id)

    def _load_pool(
        self,
        collection_id: Optional[int],
        now: datetime,
        word_ids: Optional[Iterable[int]] = None,
    ) -> List[Tuple[Word, WordProgress]]:
        words = self._load_words(collection_id, word_ids)
        records = self.progress_service.get_records_for_words(words, now)
        return list(zip(words, records))

    def _record_metrics(self, word_ids: List[int]) -> None:
        words_scheduled.labels(mode=self.mode.value).inc(len(word_ids))


class FlashcardScheduler(_PoolScheduler):
    """Puts new and weak words first, with a few well-known words mixed in."""

    mode = StudyMode.FLASHCARD

    def schedule(
        self,
        collection_id: Optional[int] = None,
        limit: Optional[int] = None,
        include_new_words: bool = True,
        include_review_words: bool = True,
        mastery_threshold: Optional[float] = None,
        reinforcement_ratio: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> FlashcardSchedule:
        """Order the flashcards of a collection (or of every word).

        include_review_words=False drops answered words that are not yet due.
        Words at or above mastery_threshold that have been seen many times are
        not dropped; they fill every n-th slot, n being 1 / reinforcement_ratio.
        """
        now = now or utcnow()
        if limit is None:
            limit = settings.scheduling.flashcard_limit
        if mastery_threshold is None:
            mastery_threshold = settings.scheduling.flashcard_mastery_threshold
        if reinforcement_ratio is None:
            reinforcement_ratio = settings.scheduling.reinforcement_ratio

        learning: List[WordProgress] = []
        reinforcement: List[WordProgress] = []
        new_words_count = 0
        review_words_count = 0

        for _, record in self._load_pool(collection_id, now):
            unseen = (record.times_seen or 0) == 0
            if unseen:
                new_words_count += 1
            elif is_due_for_review(record, now):
                review_words_count += 1

            if unseen and not include_new_words:
                continue
            if not include_review_words and not is_due_for_review(record, now):
                continue

            overlearned = (
                calculate_mastery(record) >= mastery_threshold
                and record.times_seen > FLASHCARD_OVERLEARNED_SEEN
            )
            if overlearned:
                reinforcement.append(record)
            else:
                learning.append(record)

        ordered = self._interleave(
            [w.word_id for w in rank_words(learning, self.mode, now)],
            [w.word_id for w in rank_words(reinforcement, self.mode, now)],
            reinforcement_ratio,
        )
        word_ids = _cap(ordered, limit)

        self._record_metrics(word_ids)
        logger.debug(
            "Flashcards for collection %s: %d learning, %d reinforcement, %d selected",
            collection_id,
            len(learning),
            len(reinforcement),
            len(word_ids),
        )
        return FlashcardSchedule(
            word_ids=word_ids,
            total_available=len(learning) + len(reinforcement),
            new_words_count=new_words_count,
            review_words_count=review_words_count,
        )

    @staticmethod
    def _interleave(learning: List[int], reinforcement: List[int], ratio: float) -> List[int]:
        if ratio <= 0 or not reinforcement:
            return learning
        if not learning:
            return reinforcement

        step = max(2, round(1 / ratio))
        result: List[int] = []
        learning_iter = iter(learning)
        reinforcement_iter = iter(reinforcement)
        remaining_learning = len(learning)
        remaining_reinforcement = len(reinforcement)

        while remaining_learning or remaining_reinforcement:
            slot_for_reinforcement = (len(result) + 1) % step == 0
            if remaining_reinforcement and (slot_for_reinforcement or not remaining_learning):
                result.append(next(reinforcement_iter))
                remaining_reinforcement -= 1
            else:
                result.append(next(learning_iter))
                remaining_learning -= 1
        return result


def calculate_dynamic_test_limit(
    masteries: Sequence[float],
    default_limit: Optional[int] = None,
    min_limit: Optional[int] = None,
    max_limit: Optional[int] = None,
) -> int:
    """Test batch size derived from how the pool's mastery is spread.

    Mostly weak words give a larger batch, mostly mid-band words the default
    batch, mostly well-known words a smaller one. The result stays within
    [min_limit, max_limit] and never exceeds the pool size.
    """
    if default_limit is None:
        default_limit = settings.scheduling.test_default_limit
    if min_limit is None:
        min_limit = settings.scheduling.test_min_limit
    if max_limit is None:
        max_limit = settings.scheduling.test_max_limit

    total = len(masteries)
    if total == 0:
        return 0

    low = sum(1 for mastery in masteries if mastery < 0.3)
    medium = sum(1 for mastery in masteries if 0.3 <= mastery <= 0.7)
    high = total - low - medium

    if low / total > 0.5:
        limit = min(total // 2, default_limit * 3 // 2)
    elif medium / total > 0.4:
        limit = default_limit
    elif high / total > 0.6:
        limit = max(min_limit, default_limit * 7 // 10)
    else:
        base = min(max(min_limit, total * 3 // 10), total // 2)
        limit = min(base, default_limit)

    limit = min(limit, max_limit, total)
    if total < min_limit:
        return total
    return max(min_limit, limit)


class TestScheduler(_PoolScheduler):
    """Picks mid-band and hard words and builds multiple-choice distractors."""
    __test__ = False

    mode = StudyMode.TEST

    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        super().__init__(db)
        self.rng = rng or random.Random()

    def schedule(
        self,
        collection_id: Optional[int] = None,
        limit: Optional[int] = None,
        difficulty_range: Tuple[int, int] = (1, 5),
        mastery_range: Tuple[float, float] = (0.0, 1.0),
        exclude_too_easy: bool = True,
        exclude_too_hard: bool = False,
        distractor_count: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TestSchedule:
        """Select test words; without a limit the batch size is derived from the pool."""
        now = now or utcnow()
        if distractor_count is None:
            distractor_count = settings.scheduling.distractor_count

        pool = self._load_pool(collection_id, now)
        candidates: List[WordProgress] = []
        masteries: List[float] = []
        total_difficulty = 0

        for _, record in pool:
            mastery = calculate_mastery(record)
            difficulty = record.difficulty if record.difficulty is not None else DEFAULT_DIFFICULTY

            if not difficulty_range[0] <= difficulty <= difficulty_range[1]:
                continue
            if not mastery_range[0] <= mastery <= mastery_range[1]:
                continue
            if (
                exclude_too_easy
                and mastery > TEST_TOO_EASY_MASTERY
                and record.times_seen > TEST_TOO_EASY_SEEN
            ):
                continue
            if (
                exclude_too_hard
                and mastery < TEST_TOO_HARD_MASTERY
                and record.wrong_streak >= TEST_TOO_HARD_WRONG_STREAK
            ):
                continue

            candidates.append(record)
            masteries.append(mastery)
            total_difficulty += difficulty

        if limit is None:
            limit = calculate_dynamic_test_limit(masteries)
            logger.debug("Dynamic test batch size for %d candidates: %d", len(candidates), limit)

        word_ids = _cap([w.word_id for w in rank_words(candidates, self.mode, now)], limit)

        words = [word for word, _ in pool]
        questions = [
            TestQuestion(
                word_id=word_id,
                distractor_ids=self.pick_distractors(word_id, words, distractor_count),
            )
            for word_id in word_ids
        ]

        self._record_metrics(word_ids)
        count = len(candidates)
        return TestSchedule(
            word_ids=word_ids,
            questions=questions,
            total_available=count,
            average_difficulty=round(total_difficulty / count, 2) if count else 0.0,
            average_mastery=round(sum(masteries) / count, 2) if count else 0.0,
        )

    def pick_distractors(self, word_id: int, words: Sequence[Word], count: int) -> List[int]:
        """Random wrong options for word_id.

        Words of the same collection within words are preferred; the rest
        come from every stored word. The result has no duplicates and never
        contains word_id, and is shorter than count only when too few words
        exist.
        """
        by_id: Dict[int, Word] = {word.id: word for word in words}
        word = by_id.get(word_id) or self.word_service.get_word(word_id)
        if word is None or count <= 0:
            return []

        siblings = sorted(
            other.id
            for other in by_id.values()
            if other.collection_id == word.collection_id and other.id != word_id
        )
        chosen = self.rng.sample(siblings, min(count, len(siblings)))

        if len(chosen) < count:
            others = sorted(
                other.id
                for other in self.word_service.get_words_by_collection()
                if other.id != word_id and other.id not in chosen
            )
            chosen.extend(self.rng.sample(others, min(count - len(chosen), len(others))))
        return chosen


class ReviewScheduler(_PoolScheduler):
    """Selects previously studied words for review, least recently reviewed first."""

    mode = StudyMode.REVIEW

    def schedule(
        self,
        collection_id: Optional[int] = None,
        limit: Optional[int] = None,
        only_due: bool = False,
        word_ids: Optional[Iterable[int]] = None,
        urgency_threshold: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> ReviewSchedule:
        """Select review words.

        Words never answered are not reviewed. With only_due just the due
        words qualify; with word_ids (a learned cohort) only the cohort's
        members that are due or still unmastered qualify. due_count counts
        every due word in scope before the limit is applied.
        """
        now = now or utcnow()
        if limit is None:
            limit = settings.scheduling.review_limit
        if urgency_threshold is None:
            urgency_threshold = settings.scheduling.urgency_threshold
        cohort = list(word_ids) if word_ids is not None else None
        unmastered_threshold = settings.scheduling.unmastered_threshold

        candidates: List[WordProgress] = []
        due_count = 0
        urgent_count = 0

        for _, record in self._load_pool(collection_id, now, cohort):
            if (record.times_seen or 0) == 0:
                continue

            due = is_due_for_review(record, now)
            if due:
                due_count += 1
            if word_urgency(record, now) > urgency_threshold:
                urgent_count += 1

            if only_due and not due:
                continue
            if cohort is not None and not due and calculate_mastery(record) >= unmastered_threshold:
                continue
            candidates.append(record)

        ordered = sorted(
            ((calculate_word_weight(record, self.mode, now), record) for record in candidates),
            key=lambda pair: (
                pair[1].last_reviewed_at.timestamp() if pair[1].last_reviewed_at else float("-inf"),
                -pair[0].weight,
                pair[0].word_id,
            ),
        )
        selected = _cap([word_weight.word_id for word_weight, _ in ordered], limit)

        self._record_metrics(selected)
        logger.debug(
            "Review for collection %s: %d candidates, %d due, %d urgent, %d selected",
            collection_id,
            len(candidates),
            due_count,
            urgent_count,
            len(selected),
        )
        return ReviewSchedule(
            word_ids=selected,
            due_count=due_count,
            total_available=len(candidates),
            urgent_count=urgent_count,
        )

    def statistics(
        self, collection_id: Optional[int] = None, now: Optional[datetime] = None
    ) -> ReviewStatistics:
        """Backlog counts; only words with a stored mastery record can be due."""
        now = now or utcnow()
        words = self._load_words(collection_id)

        due_words = urgent_words = upcoming_words = 0
        for word in words:
            record = self.progress_service.get_progress(word.id)
            if record is None:
                continue
            if is_due_for_review(record, now):
                due_words += 1
            if word_urgency(record, now) > STATISTICS_URGENT:
                urgent_words += 1
            if record.next_review_at is not None:
                days_left = (record.next_review_at - now).total_seconds() / 86400
                if 0 < days_left <= UPCOMING_DAYS:
                    upcoming_words += 1

        return ReviewStatistics(
            total_words=len(words),
            due_words=due_words,
            urgent_words=urgent_words,
            upcoming_words=upcoming_words,
        )


class SchedulerService:
    """Dispatches scheduling requests to the scheduler of each study mode."""

    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        """Initialize the service with a database session."""
        self.db = db
        self.flashcard = FlashcardScheduler(db)
        self.test = TestScheduler(db, rng)
        self.review = ReviewScheduler(db)

    def _scheduler(self, mode: StudyMode) -> _PoolScheduler:
        return {
            StudyMode.FLASHCARD: self.flashcard,
            StudyMode.TEST: self.test,
            StudyMode.REVIEW: self.review,
        }[StudyMode(mode)]

    def schedule_words(
        self,
        mode: StudyMode,
        collection_id: Optional[int] = None,
        limit: Optional[int] = None,
        **options: Any,
    ):
        """Schedule a batch for mode; options are passed to that mode's scheduler.

        Raises ValueError for an unknown mode.
        """
        mode = StudyMode(mode)
        with scheduling_duration.labels(mode=mode.value).time():
            result = self._scheduler(mode).schedule(
                collection_id=collection_id, limit=limit, **options
            )
        logger.info(
            "Scheduled %d %s words for collection %s",
            len(result.word_ids),
            mode.value,
            collection_id,
        )
        return result

    def get_next_word(
        self,
        mode: StudyMode,
        current_word_id: Optional[int] = None,
        collection_id: Optional[int] = None,
        limit: Optional[int] = None,
        **options: Any,
    ) -> Optional[int]:
        """The word after current_word_id in a freshly scheduled batch."""
        result = self.schedule_words(mode, collection_id=collection_id, limit=limit, **options)
        return next_in_order(result.word_ids, current_word_id)

    def get_review_statistics(
        self, collection_id: Optional[int] = None, now: Optional[datetime] = None
    ) -> ReviewStatistics:
        """Total, due, urgent and upcoming word counts."""
        return self.review.statistics(collection_id, now)
