"""The write path for mastery records."""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from vocadrill.exceptions import WordNotFoundError
from vocadrill.models.base import storage_operation
from vocadrill.models.models import ReviewLog, Word, WordProgress
from vocadrill.models.study_models import Outcome, ProgressUpdate, StudyMode
from vocadrill.models.types import utcnow
from vocadrill.monitoring import answers_graded
from vocadrill.services.grading import grade_answer, new_progress_record
from vocadrill.services.word_service import WordService

logger = logging.getLogger(__name__)


class ProgressService:
    """Reads mastery records for the schedulers and is the only code that writes them.

    Calls are not re-entrant: two unawaited updates of the same word would
    both read the same record and the second write would win.
    """

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db
        self.word_service = WordService(db)

    def get_progress(self, word_id: int) -> Optional[WordProgress]:
        """Get the stored mastery record of a word, if any."""
        with storage_operation(self.db, "get_progress"):
            return self.db.get(WordProgress, word_id)

    def get_records_for_words(
        self, words: Iterable[Word], now: Optional[datetime] = None
    ) -> List[WordProgress]:
        """Mastery records for words, in the same order, defaulting missing ones.

        Default records are not saved; reading a pool never writes.
        """
        words = list(words)
        if not words:
            return []

        with storage_operation(self.db, "get_records_for_words"):
            stored = (
                self.db.query(WordProgress)
                .filter(WordProgress.word_id.in_([word.id for word in words]))
                .all()
            )
        by_word: Dict[int, WordProgress] = {record.word_id: record for record in stored}

        records = []
        for word in words:
            record = by_word.get(word.id)
            if record is None:
                record = new_progress_record(word.id, word.collection_id, word.difficulty, now)
            records.append(record)
        return records

    def ensure_progress_exists(self, word_id: int) -> Optional[WordProgress]:
        """Get the record of a word, creating and saving a default one if needed.

        Returns None when the word itself does not exist.
        """
        record = self.get_progress(word_id)
        if record is not None:
            return record

        word = self.word_service.get_word(word_id)
        if word is None:
            return None

        record = new_progress_record(word.id, word.collection_id, word.difficulty)
        with storage_operation(self.db, "ensure_progress_exists"):
            self.db.add(record)
            self.db.commit()
        logger.debug("Created mastery record for word %s", word_id)
        return record

    def update_word_progress(
        self,
        word_id: int,
        outcome: Outcome,
        mode: StudyMode,
        grade: Optional[int] = None,
        response_time_ms: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> WordProgress:
        """Apply one answer to a word and persist the result.

        Raises WordNotFoundError when the word does not exist and ValueError
        for an unknown outcome, mode or grade.
        """
        outcome = Outcome(outcome)
        mode = StudyMode(mode)
        now = now or utcnow()

        record = self.get_progress(word_id)
        is_new = record is None
        if is_new:
            word = self.word_service.get_word(word_id)
            if word is None:
                raise WordNotFoundError(word_id)
            record = new_progress_record(word.id, word.collection_id, word.difficulty, now)

        grade_answer(record, outcome, response_time_ms=response_time_ms, grade=grade, now=now)
        record.last_mode = mode.value
        record.last_reviewed_at = now

        log = ReviewLog(
            word_id=word_id,
            timestamp=now,
            mode=mode.value,
            result=outcome.value,
            grade=grade,
            response_time=response_time_ms,
            next_review_at=record.next_review_at,
            ease_factor_after=record.ease_factor,
            interval_days_after=record.interval_days,
        )
        with storage_operation(self.db, "update_word_progress"):
            if is_new:
                self.db.add(record)
            self.db.add(log)
            self.db.commit()

        answers_graded.labels(outcome=outcome.value, mode=mode.value).inc()
        logger.info(
            "Word %s answered %s in %s mode; next review at %s",
            word_id,
            outcome.value,
            mode.value,
            record.next_review_at,
        )
        return record

    def batch_update_word_progress(
        self, updates: Iterable[ProgressUpdate], now: Optional[datetime] = None
    ) -> List[WordProgress]:
        """Apply several answers one after another, in input order."""
        results = []
        for update in updates:
            results.append(
                self.update_word_progress(
                    update.word_id,
                    update.outcome,
                    update.mode,
                    grade=update.grade,
                    response_time_ms=update.response_time_ms,
                    now=now,
                )
            )
        return results

    def get_review_logs(self, word_id: int) -> List[ReviewLog]:
        """Answer history of a word, oldest first."""
        with storage_operation(self.db, "get_review_logs"):
            return (
                self.db.query(ReviewLog)
                .filter(ReviewLog.word_id == word_id)
                .order_by(ReviewLog.timestamp, ReviewLog.id)
                .all()
            )
