"""Eight-stage Ebbinghaus review curve for word collections."""
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from vocadrill.config import settings
from vocadrill.models.models import ReviewPlan
from vocadrill.models.types import utcnow

logger = logging.getLogger(__name__)

FIRST_STAGE = 1
LAST_STAGE = 8
MAX_URGENCY_DAYS = 30


def _check_stage(stage: int) -> int:
    if not FIRST_STAGE <= stage <= LAST_STAGE:
        raise ValueError(f"Review stage must be between {FIRST_STAGE} and {LAST_STAGE}, got {stage}")
    return stage


def stage_interval(stage: int) -> timedelta:
    """Time from the triggering event until the stage is due."""
    return timedelta(days=settings.review.stage_intervals[_check_stage(stage) - 1])


def calculate_next_review_time(stage: int, last_review_time: datetime) -> datetime:
    """Due time of stage, counted from last_review_time."""
    return last_review_time + stage_interval(stage)


def create_review_plan(
    collection_id: int,
    total_words: int,
    started_at: Optional[datetime] = None,
    learned_word_ids: Optional[List[int]] = None,
) -> ReviewPlan:
    """Build a new plan at stage 1, due one stage-1 interval after started_at."""
    now = started_at or utcnow()
    return ReviewPlan(
        collection_id=collection_id,
        review_stage=FIRST_STAGE,
        next_review_at=calculate_next_review_time(FIRST_STAGE, now),
        completed_stages=[],
        started_at=now,
        last_completed_at=None,
        is_completed=False,
        total_words=total_words,
        learned_word_ids=list(learned_word_ids) if learned_word_ids else None,
        created_at=now,
        updated_at=now,
    )


def advance_review_stage(plan: ReviewPlan, completed_at: Optional[datetime] = None) -> ReviewPlan:
    """Complete the current stage and move the plan forward; returns the plan.

    The plan is updated in place. Completing stage 8 finishes the plan;
    advancing a finished plan changes nothing.
    """
    if plan.is_completed:
        logger.debug("Review plan %s is already completed", plan.id)
        return plan

    now = completed_at or utcnow()
    current_stage = _check_stage(plan.review_stage)
    completed_stages = list(plan.completed_stages or [])
    if current_stage not in completed_stages:
        completed_stages.append(current_stage)

    # A new list is assigned so the change is picked up on flush
    plan.completed_stages = completed_stages
    plan.last_completed_at = now
    plan.updated_at = now

    if current_stage >= LAST_STAGE:
        plan.review_stage = LAST_STAGE
        plan.is_completed = True
        logger.info("Review plan %s finished all %d stages", plan.id, LAST_STAGE)
        return plan

    plan.review_stage = current_stage + 1
    plan.next_review_at = calculate_next_review_time(plan.review_stage, now)
    logger.info(
        "Review plan %s advanced to stage %d, due at %s",
        plan.id,
        plan.review_stage,
        plan.next_review_at,
    )
    return plan


def is_review_due(plan: ReviewPlan, now: Optional[datetime] = None) -> bool:
    """True once now has reached the plan's due time."""
    return (now or utcnow()) >= plan.next_review_at


def get_review_urgency(plan: ReviewPlan, now: Optional[datetime] = None) -> float:
    """0 before the due time, then log-compressed overdue days, capped at 1."""
    now = now or utcnow()
    if now < plan.next_review_at:
        return 0.0

    overdue_days = (now - plan.next_review_at).total_seconds() / 86400
    return min(1.0, math.log(overdue_days + 1) / math.log(MAX_URGENCY_DAYS))


def interval_description(stage: int) -> str:
    """Human-readable length of the interval before stage."""
    days = settings.review.stage_intervals[_check_stage(stage) - 1]
    if days < 1:
        hours = round(days * 24)
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    if days == 1:
        return "1 day"
    return f"{days:g} days"


def stage_description(stage: int) -> str:
    """E.g. 'Review 3 (after 2 days)'."""
    return f"Review {stage} (after {interval_description(stage)})"
