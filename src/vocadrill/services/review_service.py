"""Service for storing and advancing review plans."""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from vocadrill.exceptions import CollectionNotFoundError, ReviewPlanNotFoundError
from vocadrill.models.base import storage_operation
from vocadrill.models.models import ReviewPlan
from vocadrill.models.types import utcnow
from vocadrill.monitoring import review_stages_completed
from vocadrill.services.review_curve import (
    advance_review_stage,
    create_review_plan,
    is_review_due,
)
from vocadrill.services.word_service import WordService

logger = logging.getLogger(__name__)


class ReviewService:
    """Service for managing the review plans of word collections."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db
        self.word_service = WordService(db)

    def get_review_plan(self, collection_id: int) -> Optional[ReviewPlan]:
        """Get the first review plan of a collection."""
        with storage_operation(self.db, "get_review_plan"):
            return (
                self.db.query(ReviewPlan)
                .filter(ReviewPlan.collection_id == collection_id)
                .order_by(ReviewPlan.id)
                .first()
            )

    def get_review_plans_by_collection(self, collection_id: int) -> List[ReviewPlan]:
        """Get every review plan of a collection, oldest first."""
        with storage_operation(self.db, "get_review_plans_by_collection"):
            return (
                self.db.query(ReviewPlan)
                .filter(ReviewPlan.collection_id == collection_id)
                .order_by(ReviewPlan.id)
                .all()
            )

    def get_or_create_review_plan(
        self,
        collection_id: int,
        total_words: int,
        learned_word_ids: Optional[List[int]] = None,
        now: Optional[datetime] = None,
    ) -> ReviewPlan:
        """Find or create the plan for a collection.

        With learned_word_ids the plan governs exactly that cohort: an existing
        plan with the same set of word ids is reused, otherwise a separate plan
        is created for it. Raises CollectionNotFoundError when the collection
        does not exist.
        """
        if self.word_service.get_collection(collection_id) is None:
            raise CollectionNotFoundError(collection_id)

        if learned_word_ids:
            cohort = set(learned_word_ids)
            for plan in self.get_review_plans_by_collection(collection_id):
                if plan.learned_word_ids and set(plan.learned_word_ids) == cohort:
                    return plan
            plan = create_review_plan(
                collection_id, len(cohort), started_at=now, learned_word_ids=sorted(cohort)
            )
        else:
            plan = self.get_review_plan(collection_id)
            if plan is not None:
                return plan
            plan = create_review_plan(collection_id, total_words, started_at=now)

        with storage_operation(self.db, "create_review_plan"):
            self.db.add(plan)
            self.db.commit()
            self.db.refresh(plan)
        logger.info(
            "Created review plan %s for collection %s (%d words), due at %s",
            plan.id,
            collection_id,
            plan.total_words,
            plan.next_review_at,
        )
        return plan

    def complete_review_stage(
        self,
        collection_id: int,
        completed_at: Optional[datetime] = None,
        plan_id: Optional[int] = None,
    ) -> ReviewPlan:
        """Advance a plan by one stage and persist it.

        Uses plan_id when given, otherwise the collection's first plan.
        Raises ReviewPlanNotFoundError when there is no such plan.
        """
        if plan_id is not None:
            with storage_operation(self.db, "complete_review_stage"):
                plan = self.db.get(ReviewPlan, plan_id)
            if plan is not None and plan.collection_id != collection_id:
                plan = None
        else:
            plan = self.get_review_plan(collection_id)

        if plan is None:
            raise ReviewPlanNotFoundError(collection_id, plan_id)

        was_completed = plan.is_completed
        advance_review_stage(plan, completed_at)
        with storage_operation(self.db, "complete_review_stage"):
            self.db.commit()

        if not was_completed:
            review_stages_completed.inc()
        return plan

    def get_due_review_plans(self, now: Optional[datetime] = None) -> List[ReviewPlan]:
        """Unfinished plans that are due, earliest due first."""
        now = now or utcnow()
        with storage_operation(self.db, "get_due_review_plans"):
            plans = (
                self.db.query(ReviewPlan)
                .filter(ReviewPlan.is_completed.is_(False))
                .all()
            )
        due = [plan for plan in plans if is_review_due(plan, now)]
        due.sort(key=lambda plan: (plan.next_review_at, plan.id))
        return due

    def get_all_review_plans(self) -> List[ReviewPlan]:
        """Get every review plan."""
        with storage_operation(self.db, "get_all_review_plans"):
            return self.db.query(ReviewPlan).order_by(ReviewPlan.id).all()

    def delete_review_plans(self, collection_id: int) -> int:
        """Delete the plans of a collection; returns how many were removed."""
        with storage_operation(self.db, "delete_review_plans"):
            count = (
                self.db.query(ReviewPlan)
                .filter(ReviewPlan.collection_id == collection_id)
                .delete()
            )
            self.db.commit()
        logger.info("Deleted %d review plans of collection %s", count, collection_id)
        return count
