"""Monitoring configuration for the vocabulary engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Grading metrics
answers_graded = Counter(
    "vocadrill_answers_graded_total",
    "Total number of answers applied to mastery records",
    ["outcome", "mode"],
)

# Scheduling metrics
words_scheduled = Counter(
    "vocadrill_words_scheduled_total",
    "Total number of word ids handed out by the mode schedulers",
    ["mode"],
)

scheduling_duration = Histogram(
    "vocadrill_scheduling_duration_seconds",
    "Duration of a scheduling call in seconds",
    ["mode"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

# Review curve metrics
review_stages_completed = Counter(
    "vocadrill_review_stages_completed_total",
    "Total number of review stages completed",
)

review_lock_decisions = Counter(
    "vocadrill_review_lock_decisions_total",
    "Review lock decisions by result",
    ["result"],
)

# Database metrics
db_errors = Counter(
    "vocadrill_db_errors_total",
    "Total number of database errors",
    ["operation"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
