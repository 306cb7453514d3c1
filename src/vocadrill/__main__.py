"""Status report: due review plans and the current review lock."""
import logging
import sys

from vocadrill.app import StudyEngine
from vocadrill.config import settings
from vocadrill.exceptions import VocadrillError
from vocadrill.logging_config import setup_logging
from vocadrill.monitoring import start_monitoring
from vocadrill.services.review_curve import get_review_urgency, stage_description

logger = logging.getLogger(__name__)


def main() -> int:
    """Log the review backlog."""
    setup_logging("Starting vocadrill status ...")

    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
        logger.info("Metrics exposed on port %d", settings.monitoring.port)

    try:
        with StudyEngine() as engine:
            plans = engine.get_due_review_plans()
            if not plans:
                logger.info("No review plans are due")
            for plan in plans:
                logger.info(
                    "Collection %s: %s is due (urgency %.2f, %d words)",
                    plan.collection_id,
                    stage_description(plan.review_stage),
                    get_review_urgency(plan),
                    plan.total_words,
                )

            message = engine.review_lock_message()
            logger.info(message or "No review in progress")
    except VocadrillError as e:
        logger.error("Status check failed: %s", e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
