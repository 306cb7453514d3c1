"""Value types passed between the schedulers, the grader and callers."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class StudyMode(str, Enum):
    """The three study modes."""
    FLASHCARD = "flashcard"
    TEST = "test"
    REVIEW = "review"


class Outcome(str, Enum):
    """Raw result of a single answer."""
    CORRECT = "correct"
    WRONG = "wrong"
    SKIP = "skip"


class AcquireResult(str, Enum):
    """Result of a compare-and-set attempt on the review lock."""
    ACQUIRED = "acquired"
    ALREADY_HELD = "already_held"
    HELD_BY_OTHER = "held_by_other"


@dataclass(frozen=True)
class WordWeight:
    """Selection weight of a single word, with the reasons that produced it."""
    word_id: int
    mastery: float
    weight: float
    reasons: List[str] = field(default_factory=list, compare=False)


@dataclass
class FlashcardSchedule:
    """Ordered flashcard batch."""
    word_ids: List[int]
    total_available: int
    new_words_count: int
    review_words_count: int


@dataclass(frozen=True)
class TestQuestion:
    """A multiple-choice question: the word to ask and the distractor word ids."""
    __test__ = False

    word_id: int
    distractor_ids: List[int]


@dataclass
class TestSchedule:
    """Ordered test batch with its multiple-choice distractors."""
    __test__ = False

    word_ids: List[int]
    questions: List[TestQuestion]
    total_available: int
    average_difficulty: float
    average_mastery: float


@dataclass
class ReviewSchedule:
    """Ordered review batch. due_count is computed before the limit is applied."""
    word_ids: List[int]
    due_count: int
    total_available: int
    urgent_count: int


@dataclass(frozen=True)
class ReviewStatistics:
    """Counts describing the review backlog of a collection."""
    total_words: int
    due_words: int
    urgent_words: int
    upcoming_words: int


@dataclass(frozen=True)
class LockInfo:
    """Who holds the review lock."""
    collection_id: int
    review_stage: int
    locked_at: datetime
    collection_name: Optional[str] = None


@dataclass(frozen=True)
class LockDecision:
    """Answer to "may this collection start a review?"."""
    allowed: bool
    lock_info: Optional[LockInfo] = None


@dataclass(frozen=True)
class LockAttempt:
    """Result of try_acquire together with the lock as it stands afterwards."""
    result: AcquireResult
    lock_info: Optional[LockInfo] = None

    @property
    def acquired(self) -> bool:
        return self.result is not AcquireResult.HELD_BY_OTHER


@dataclass
class ProgressUpdate:
    """One entry of a batch progress update."""
    word_id: int
    outcome: Outcome
    mode: StudyMode
    grade: Optional[int] = None
    response_time_ms: Optional[int] = None
