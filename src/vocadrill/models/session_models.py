"""Resumable study-session snapshots.

A snapshot is a tagged union keyed by study mode. Every snapshot belongs to a
(mode, collection, review stage) key; a stored snapshot whose key does not
match the one requested on load is treated as absent.
"""
from dataclasses import asdict, dataclass, field, replace
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Type

from vocadrill.models.study_models import Outcome, StudyMode


@dataclass(frozen=True)
class SnapshotKey:
    """Identity of a resumable session."""
    mode: StudyMode
    collection_id: Optional[int]
    review_stage: Optional[int] = None


@dataclass
class SessionStats:
    """Running counters of a study session."""
    studied_count: int = 0
    correct_count: int = 0
    wrong_count: int = 0

    def record(self, outcome: Outcome) -> None:
        """Count one answer."""
        outcome = Outcome(outcome)
        self.studied_count += 1
        if outcome is Outcome.CORRECT:
            self.correct_count += 1
        elif outcome is Outcome.WRONG:
            self.wrong_count += 1


@dataclass
class SessionSnapshot:
    """Fields shared by every mode."""
    mode: ClassVar[StudyMode]

    collection_id: Optional[int]
    word_ids: List[int]
    current_index: int = 0
    stats: SessionStats = field(default_factory=SessionStats)
    review_stage: Optional[int] = None
    saved_at: Optional[str] = None  # ISO format datetime string

    def __post_init__(self) -> None:
        if not 0 <= self.current_index <= len(self.word_ids):
            raise ValueError(
                f"Cursor {self.current_index} outside [0, {len(self.word_ids)}]"
            )
        if isinstance(self.stats, dict):
            self.stats = SessionStats(**self.stats)

    @property
    def key(self) -> SnapshotKey:
        return SnapshotKey(self.mode, self.collection_id, self.review_stage)

    @property
    def is_finished(self) -> bool:
        return self.current_index >= len(self.word_ids)

    def to_payload(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dict tagged with the mode."""
        payload = asdict(self)
        payload["mode"] = self.mode.value
        return payload

    def without_words(self, removed: Iterable[int]) -> "SessionSnapshot":
        """Drop removed word ids, keeping the cursor on the same upcoming word."""
        removed = set(removed)
        kept = [word_id for word_id in self.word_ids if word_id not in removed]
        passed = sum(1 for word_id in self.word_ids[:self.current_index] if word_id not in removed)
        return replace(self, word_ids=kept, current_index=passed, **self._extra_without(removed))

    def _extra_without(self, removed: set) -> Dict[str, Any]:
        return {}


@dataclass
class FlashcardSnapshot(SessionSnapshot):
    """Flashcard session: whether the back of the card is showing."""
    mode: ClassVar[StudyMode] = StudyMode.FLASHCARD

    show_answer: bool = False
    current_word_id: Optional[int] = None

    def _extra_without(self, removed: set) -> Dict[str, Any]:
        if self.current_word_id in removed:
            return {"current_word_id": None, "show_answer": False}
        return {}


@dataclass
class TestSnapshot(SessionSnapshot):
    """Multiple-choice session: the options on screen and the chosen one."""
    __test__ = False
    mode: ClassVar[StudyMode] = StudyMode.TEST

    options: List[int] = field(default_factory=list)
    selected_option: Optional[int] = None
    answered: bool = False

    def _extra_without(self, removed: set) -> Dict[str, Any]:
        if any(word_id in removed for word_id in self.options):
            return {"options": [], "selected_option": None, "answered": False}
        return {}


@dataclass
class ReviewSnapshot(SessionSnapshot):
    """Review session: the outcome recorded so far for each word."""
    mode: ClassVar[StudyMode] = StudyMode.REVIEW

    review_plan_id: Optional[int] = None
    word_results: Dict[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__post_init__()
        # JSON object keys come back as strings
        self.word_results = {int(k): Outcome(v).value for k, v in self.word_results.items()}

    def _extra_without(self, removed: set) -> Dict[str, Any]:
        return {
            "word_results": {
                word_id: result
                for word_id, result in self.word_results.items()
                if word_id not in removed
            }
        }


SNAPSHOT_TYPES: Dict[StudyMode, Type[SessionSnapshot]] = {
    StudyMode.FLASHCARD: FlashcardSnapshot,
    StudyMode.TEST: TestSnapshot,
    StudyMode.REVIEW: ReviewSnapshot,
}


def snapshot_from_payload(payload: Dict[str, Any]) -> SessionSnapshot:
    """Rebuild a snapshot from its stored payload.

    Raises ValueError, KeyError or TypeError when the payload is malformed.
    """
    data = dict(payload)
    mode = StudyMode(data.pop("mode"))
    return SNAPSHOT_TYPES[mode](**data)
