"""Persistence of resumable study sessions, one snapshot per study mode."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from vocadrill.models.base import storage_operation
from vocadrill.models.models import StudySnapshot
from vocadrill.models.session_models import SessionSnapshot, SnapshotKey, snapshot_from_payload
from vocadrill.models.study_models import StudyMode
from vocadrill.models.types import utcnow
from vocadrill.services.word_service import WordService

logger = logging.getLogger(__name__)


class SessionService:
    """Service for saving, restoring and clearing session snapshots."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db
        self.word_service = WordService(db)

    def save_snapshot(
        self, snapshot: SessionSnapshot, now: Optional[datetime] = None
    ) -> SessionSnapshot:
        """Store a snapshot, replacing the previous one of the same mode."""
        now = now or utcnow()
        snapshot.saved_at = now.isoformat()
        mode = snapshot.mode.value

        with storage_operation(self.db, "save_snapshot"):
            row = self.db.get(StudySnapshot, mode)
            if row is None:
                row = StudySnapshot(mode=mode)
                self.db.add(row)
            row.collection_id = snapshot.collection_id
            row.review_stage = snapshot.review_stage
            row.payload = snapshot.to_payload()
            row.saved_at = now
            self.db.commit()

        logger.debug(
            "Saved %s snapshot of collection %s at %d/%d",
            mode,
            snapshot.collection_id,
            snapshot.current_index,
            len(snapshot.word_ids),
        )
        return snapshot

    def load_snapshot(self, key: SnapshotKey) -> Optional[SessionSnapshot]:
        """Restore the snapshot stored for key.

        A stored snapshot of another collection or stage counts as absent.
        Words deleted since the snapshot was taken are dropped; when none
        remain there is nothing to resume.
        """
        mode = StudyMode(key.mode)
        with storage_operation(self.db, "load_snapshot"):
            row = self.db.get(StudySnapshot, mode.value)
        if row is None:
            return None

        if row.collection_id != key.collection_id or row.review_stage != key.review_stage:
            logger.info(
                "Ignoring %s snapshot of collection %s stage %s; requested collection %s stage %s",
                mode.value,
                row.collection_id,
                row.review_stage,
                key.collection_id,
                key.review_stage,
            )
            return None

        try:
            snapshot = snapshot_from_payload(row.payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable %s snapshot: %s", mode.value, e)
            return None

        if snapshot.key != SnapshotKey(mode, key.collection_id, key.review_stage):
            logger.warning("Discarding %s snapshot whose payload does not match its key", mode.value)
            return None

        existing = self.word_service.get_existing_word_ids(snapshot.word_ids)
        removed = set(snapshot.word_ids) - existing
        if removed:
            logger.warning(
                "Dropping %d deleted words from the %s snapshot", len(removed), mode.value
            )
            snapshot = snapshot.without_words(removed)

        if not snapshot.word_ids:
            return None
        return snapshot

    def clear_snapshot(self, mode: StudyMode) -> None:
        """Forget the snapshot of a mode. Does nothing when there is none."""
        mode = StudyMode(mode)
        with storage_operation(self.db, "clear_snapshot"):
            self.db.query(StudySnapshot).filter(StudySnapshot.mode == mode.value).delete()
            self.db.commit()
        logger.debug("Cleared %s snapshot", mode.value)
