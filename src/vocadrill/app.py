"""Main application facade.

``StudyEngine`` is what a study UI talks to: it schedules batches for the
three study modes, records answers, moves review plans along the review
curve, guards reviews with the review lock and keeps resumable snapshots.
"""
import logging
import random
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from vocadrill.models.base import SessionLocal, init_db
from vocadrill.models.models import ReviewPlan, WordProgress
from vocadrill.models.session_models import SessionSnapshot, SnapshotKey
from vocadrill.models.study_models import (
    FlashcardSchedule,
    LockAttempt,
    LockDecision,
    LockInfo,
    Outcome,
    ProgressUpdate,
    ReviewSchedule,
    ReviewStatistics,
    StudyMode,
    TestSchedule,
)
from vocadrill.services.progress_service import ProgressService
from vocadrill.services.review_curve import get_review_urgency, is_review_due
from vocadrill.services.review_lock import ReviewLockService
from vocadrill.services.review_service import ReviewService
from vocadrill.services.scheduler_service import SchedulerService
from vocadrill.services.session_service import SessionService
from vocadrill.services.word_service import WordService


class StudyEngine:
    """Main application class."""

    def __init__(self, db: Optional[Session] = None, rng: Optional[random.Random] = None):
        """Initialize the engine, opening a session of its own when none is given."""
        self.owns_session = db is None
        if db is None:
            init_db()
            db = SessionLocal()
        self.db = db
        self.logger = logging.getLogger(__name__)

        self.words = WordService(db)
        self.progress = ProgressService(db)
        self.scheduler = SchedulerService(db, rng)
        self.reviews = ReviewService(db)
        self.lock = ReviewLockService(db)
        self.sessions = SessionService(db)

    def close(self) -> None:
        """Close the database session if the engine opened it."""
        if self.owns_session:
            self.db.close()
            self.logger.info("Database session closed")

    def __enter__(self) -> "StudyEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Scheduling

    def schedule_flashcard_words(
        self, collection_id: Optional[int] = None, limit: Optional[int] = None, **options
    ) -> FlashcardSchedule:
        return self.scheduler.schedule_words(
            StudyMode.FLASHCARD, collection_id=collection_id, limit=limit, **options
        )

    def schedule_test_words(
        self, collection_id: Optional[int] = None, limit: Optional[int] = None, **options
    ) -> TestSchedule:
        return self.scheduler.schedule_words(
            StudyMode.TEST, collection_id=collection_id, limit=limit, **options
        )

    def schedule_review_words(
        self, collection_id: Optional[int] = None, limit: Optional[int] = None, **options
    ) -> ReviewSchedule:
        return self.scheduler.schedule_words(
            StudyMode.REVIEW, collection_id=collection_id, limit=limit, **options
        )

    def get_next_word(
        self, mode: StudyMode, current_word_id: Optional[int] = None, **options
    ) -> Optional[int]:
        return self.scheduler.get_next_word(mode, current_word_id, **options)

    def get_review_statistics(self, collection_id: Optional[int] = None) -> ReviewStatistics:
        return self.scheduler.get_review_statistics(collection_id)

    # Progress

    def update_word_progress(
        self,
        word_id: int,
        outcome: Outcome,
        mode: StudyMode,
        grade: Optional[int] = None,
        response_time_ms: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> WordProgress:
        return self.progress.update_word_progress(
            word_id, outcome, mode, grade=grade, response_time_ms=response_time_ms, now=now
        )

    def batch_update_word_progress(
        self, updates: Iterable[ProgressUpdate], now: Optional[datetime] = None
    ) -> List[WordProgress]:
        return self.progress.batch_update_word_progress(updates, now)

    # Review curve

    def get_or_create_review_plan(
        self,
        collection_id: int,
        total_words: int,
        learned_word_ids: Optional[List[int]] = None,
        now: Optional[datetime] = None,
    ) -> ReviewPlan:
        return self.reviews.get_or_create_review_plan(
            collection_id, total_words, learned_word_ids, now
        )

    def complete_review_stage(
        self,
        collection_id: int,
        completed_at: Optional[datetime] = None,
        plan_id: Optional[int] = None,
    ) -> ReviewPlan:
        """Advance the plan and release the review lock the finished review held."""
        plan = self.reviews.complete_review_stage(collection_id, completed_at, plan_id)
        self.lock.release(collection_id)
        return plan

    def get_due_review_plans(self, now: Optional[datetime] = None) -> List[ReviewPlan]:
        return self.reviews.get_due_review_plans(now)

    @staticmethod
    def is_review_due(plan: ReviewPlan, now: Optional[datetime] = None) -> bool:
        return is_review_due(plan, now)

    @staticmethod
    def get_review_urgency(plan: ReviewPlan, now: Optional[datetime] = None) -> float:
        return get_review_urgency(plan, now)

    # Review lock

    def can_start_review(self, collection_id: int) -> LockDecision:
        return self.lock.can_start(collection_id)

    def try_acquire_review_lock(self, collection_id: int, review_stage: int) -> LockAttempt:
        return self.lock.try_acquire(collection_id, review_stage)

    def set_review_lock(self, collection_id: int, review_stage: int) -> LockInfo:
        return self.lock.set_lock(collection_id, review_stage)

    def clear_review_lock(self) -> None:
        self.lock.clear_lock()

    def get_review_lock(self) -> Optional[LockInfo]:
        return self.lock.get_lock()

    def review_lock_message(self) -> Optional[str]:
        return self.lock.lock_message()

    # Session snapshots

    def save_snapshot(self, snapshot: SessionSnapshot) -> SessionSnapshot:
        return self.sessions.save_snapshot(snapshot)

    def load_snapshot(self, key: SnapshotKey) -> Optional[SessionSnapshot]:
        return self.sessions.load_snapshot(key)

    def clear_snapshot(self, mode: StudyMode) -> None:
        self.sessions.clear_snapshot(mode)
