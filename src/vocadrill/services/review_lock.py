"""The review lock: at most one word collection may be in review at a time.

The lock is cooperative. ``try_acquire`` and ``can_start`` respect the
current holder, ``set_lock`` does not. A lock older than the configured TTL
is stale and treated as if it were absent.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vocadrill.config import settings
from vocadrill.models.base import storage_operation
from vocadrill.models.models import ReviewLock
from vocadrill.models.study_models import AcquireResult, LockAttempt, LockDecision, LockInfo
from vocadrill.models.types import utcnow
from vocadrill.monitoring import review_lock_decisions
from vocadrill.services.word_service import WordService

logger = logging.getLogger(__name__)

OWNER_KEY = "default"


class ReviewLockService:
    """Service for the single persisted review lock."""

    def __init__(self, db: Session, ttl_hours: Optional[float] = None):
        """Initialize the service; ttl_hours of 0 disables expiry."""
        self.db = db
        self.word_service = WordService(db)
        if ttl_hours is None:
            ttl_hours = settings.review.lock_ttl_hours
        self.ttl = timedelta(hours=ttl_hours) if ttl_hours > 0 else None

    def _get_row(self) -> Optional[ReviewLock]:
        with storage_operation(self.db, "get_review_lock"):
            return self.db.query(ReviewLock).filter(ReviewLock.owner_key == OWNER_KEY).first()

    def _is_stale(self, row: ReviewLock, now: datetime) -> bool:
        return self.ttl is not None and now - row.locked_at >= self.ttl

    def _to_info(self, row: ReviewLock) -> LockInfo:
        collection = self.word_service.get_collection(row.collection_id)
        return LockInfo(
            collection_id=row.collection_id,
            review_stage=row.review_stage,
            locked_at=row.locked_at,
            collection_name=collection.name if collection else None,
        )

    def get_lock(self, now: Optional[datetime] = None) -> Optional[LockInfo]:
        """The current, non-stale lock, if any."""
        row = self._get_row()
        if row is None or self._is_stale(row, now or utcnow()):
            return None
        return self._to_info(row)

    def who_holds(self, now: Optional[datetime] = None) -> Optional[LockInfo]:
        """The collection currently holding the lock; same as get_lock."""
        return self.get_lock(now)

    def try_acquire(
        self, collection_id: int, review_stage: int, now: Optional[datetime] = None
    ) -> LockAttempt:
        """Take the lock unless another collection holds it."""
        now = now or utcnow()
        row = self._get_row()

        if row is not None and not self._is_stale(row, now):
            if row.collection_id != collection_id:
                review_lock_decisions.labels(result=AcquireResult.HELD_BY_OTHER.value).inc()
                logger.info(
                    "Collection %s cannot take the review lock held by collection %s",
                    collection_id,
                    row.collection_id,
                )
                return LockAttempt(AcquireResult.HELD_BY_OTHER, self._to_info(row))

            with storage_operation(self.db, "try_acquire_review_lock"):
                row.review_stage = review_stage
                row.locked_at = now
                self.db.commit()
            review_lock_decisions.labels(result=AcquireResult.ALREADY_HELD.value).inc()
            return LockAttempt(AcquireResult.ALREADY_HELD, self._to_info(row))

        with storage_operation(self.db, "try_acquire_review_lock"):
            if row is not None:
                logger.warning(
                    "Dropping stale review lock of collection %s (locked at %s)",
                    row.collection_id,
                    row.locked_at,
                )
                self.db.delete(row)
                self.db.flush()

            row = ReviewLock(
                owner_key=OWNER_KEY,
                collection_id=collection_id,
                review_stage=review_stage,
                locked_at=now,
            )
            self.db.add(row)
            try:
                self.db.commit()
            except IntegrityError:
                # Someone else inserted the lock between our read and write
                self.db.rollback()
                holder = self._get_row()
                if holder is not None and holder.collection_id == collection_id:
                    return LockAttempt(AcquireResult.ALREADY_HELD, self._to_info(holder))
                review_lock_decisions.labels(result=AcquireResult.HELD_BY_OTHER.value).inc()
                return LockAttempt(
                    AcquireResult.HELD_BY_OTHER, self._to_info(holder) if holder else None
                )

        review_lock_decisions.labels(result=AcquireResult.ACQUIRED.value).inc()
        logger.info("Collection %s took the review lock at stage %d", collection_id, review_stage)
        return LockAttempt(AcquireResult.ACQUIRED, self._to_info(row))

    def set_lock(
        self, collection_id: int, review_stage: int, now: Optional[datetime] = None
    ) -> LockInfo:
        """Write the lock unconditionally, replacing any holder."""
        now = now or utcnow()
        row = self._get_row()
        with storage_operation(self.db, "set_review_lock"):
            if row is None:
                row = ReviewLock(owner_key=OWNER_KEY)
                self.db.add(row)
            elif row.collection_id != collection_id and not self._is_stale(row, now):
                logger.warning(
                    "Review lock of collection %s overwritten by collection %s",
                    row.collection_id,
                    collection_id,
                )
            row.collection_id = collection_id
            row.review_stage = review_stage
            row.locked_at = now
            self.db.commit()
        logger.info("Review lock set for collection %s at stage %d", collection_id, review_stage)
        return self._to_info(row)

    def release(self, collection_id: int) -> bool:
        """Drop the lock if this collection holds it."""
        row = self._get_row()
        if row is None or row.collection_id != collection_id:
            return False
        with storage_operation(self.db, "release_review_lock"):
            self.db.delete(row)
            self.db.commit()
        logger.info("Collection %s released the review lock", collection_id)
        return True

    def clear_lock(self) -> None:
        """Drop the lock whoever holds it. Does nothing when there is none."""
        with storage_operation(self.db, "clear_review_lock"):
            count = self.db.query(ReviewLock).filter(ReviewLock.owner_key == OWNER_KEY).delete()
            self.db.commit()
        if count:
            logger.info("Review lock cleared")

    def can_start(self, collection_id: int, now: Optional[datetime] = None) -> LockDecision:
        """Whether collection_id may begin (or resume) a review."""
        lock = self.get_lock(now)
        if lock is None or lock.collection_id == collection_id:
            return LockDecision(allowed=True)
        return LockDecision(allowed=False, lock_info=lock)

    def lock_message(self, now: Optional[datetime] = None) -> Optional[str]:
        """Message naming the collection that has to finish its review first."""
        lock = self.get_lock(now)
        if lock is None:
            return None
        name = lock.collection_name or f"collection #{lock.collection_id}"
        return f"Review {lock.review_stage} of {name} must be finished first"
