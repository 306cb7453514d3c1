"""Configuration settings for the vocabulary engine."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Ebbinghaus review curve, days until the stage becomes due (stage 1..8)
REVIEW_STAGE_INTERVALS = [1 / 24, 1, 2, 4, 7, 15, 30, 60]


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///vocadrill.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class GradingSettings:
    """Spaced-repetition grading settings."""
    default_ease_factor: float = float(os.getenv("DEFAULT_EASE_FACTOR", "2.5"))
    min_ease_factor: float = float(os.getenv("MIN_EASE_FACTOR", "1.3"))
    fast_response_ms: int = int(os.getenv("FAST_RESPONSE_MS", "3000"))
    slow_response_ms: int = int(os.getenv("SLOW_RESPONSE_MS", "10000"))
    response_time_weight: float = float(os.getenv("RESPONSE_TIME_WEIGHT", "0.3"))


@dataclass
class SchedulingSettings:
    """Word selection settings for the three study modes."""
    flashcard_limit: int = int(os.getenv("FLASHCARD_LIMIT", "50"))
    flashcard_mastery_threshold: float = float(os.getenv("FLASHCARD_MASTERY_THRESHOLD", "0.7"))
    reinforcement_ratio: float = float(os.getenv("REINFORCEMENT_RATIO", "0.2"))
    test_default_limit: int = int(os.getenv("TEST_DEFAULT_LIMIT", "30"))
    test_min_limit: int = int(os.getenv("TEST_MIN_LIMIT", "10"))
    test_max_limit: int = int(os.getenv("TEST_MAX_LIMIT", "50"))
    distractor_count: int = int(os.getenv("DISTRACTOR_COUNT", "3"))
    review_limit: int = int(os.getenv("REVIEW_LIMIT", "50"))
    urgency_threshold: float = float(os.getenv("URGENCY_THRESHOLD", "0.5"))
    unmastered_threshold: float = float(os.getenv("UNMASTERED_THRESHOLD", "0.5"))


@dataclass
class ReviewSettings:
    """Review curve and review lock settings."""
    stage_intervals: list[float] = field(default_factory=lambda: list(REVIEW_STAGE_INTERVALS))
    lock_ttl_hours: float = float(os.getenv("REVIEW_LOCK_TTL_HOURS", "24"))


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_grading_settings() -> GradingSettings:
    """Get grading settings."""
    return GradingSettings()


def get_scheduling_settings() -> SchedulingSettings:
    """Get scheduling settings."""
    return SchedulingSettings()


def get_review_settings() -> ReviewSettings:
    """Get review settings."""
    return ReviewSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    grading: GradingSettings = field(default_factory=get_grading_settings)
    scheduling: SchedulingSettings = field(default_factory=get_scheduling_settings)
    review: ReviewSettings = field(default_factory=get_review_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.grading.min_ease_factor <= 1.0:
            raise ValueError("MIN_EASE_FACTOR must be greater than 1.0")

        if self.grading.default_ease_factor < self.grading.min_ease_factor:
            raise ValueError("DEFAULT_EASE_FACTOR cannot be lower than MIN_EASE_FACTOR")

        if self.grading.fast_response_ms >= self.grading.slow_response_ms:
            raise ValueError("FAST_RESPONSE_MS must be lower than SLOW_RESPONSE_MS")

        if not 0 < self.grading.response_time_weight <= 1:
            raise ValueError("RESPONSE_TIME_WEIGHT must be in (0, 1]")

        if self.scheduling.reinforcement_ratio < 0 or self.scheduling.reinforcement_ratio >= 1:
            raise ValueError("REINFORCEMENT_RATIO must be in [0, 1)")

        if self.scheduling.test_min_limit < 1:
            raise ValueError("TEST_MIN_LIMIT must be positive")

        if self.scheduling.test_min_limit > self.scheduling.test_max_limit:
            raise ValueError("TEST_MIN_LIMIT cannot be greater than TEST_MAX_LIMIT")

        if len(self.review.stage_intervals) != 8:
            raise ValueError("The review curve must have exactly 8 stages")

        if self.review.lock_ttl_hours < 0:
            raise ValueError("REVIEW_LOCK_TTL_HOURS cannot be negative")


# Create global settings instance
settings = Settings()
settings.validate()
