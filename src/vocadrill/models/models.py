"""Database models for the vocabulary engine."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from vocadrill.models.base import Base, TimestampMixin
from vocadrill.models.types import IntList, UTCDateTime


class WordCollection(Base, TimestampMixin):
    """A named set of words studied together."""

    __tablename__ = "word_collections"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)

    # Relationships
    words = relationship("Word", back_populates="collection", cascade="all, delete-orphan")
    review_plans = relationship(
        "ReviewPlan", back_populates="collection", cascade="all, delete-orphan"
    )


class Word(Base, TimestampMixin):
    """Word model."""

    __tablename__ = "words"

    id = Column(Integer, primary_key=True)
    collection_id = Column(Integer, ForeignKey("word_collections.id"), nullable=False, index=True)
    text = Column(String, nullable=False)
    reading = Column(String)
    meaning = Column(String, nullable=False)
    difficulty = Column(Integer)  # 1-5, optional

    # Relationships
    collection = relationship("WordCollection", back_populates="words")
    progress = relationship(
        "WordProgress",
        back_populates="word",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    review_logs = relationship(
        "ReviewLog", back_populates="word", cascade="all, delete-orphan", passive_deletes=True
    )


class WordProgress(Base, TimestampMixin):
    """Per-word mastery record."""

    __tablename__ = "word_progress"

    word_id = Column(Integer, ForeignKey("words.id", ondelete="CASCADE"), primary_key=True)
    collection_id = Column(Integer, nullable=False, index=True)
    ease_factor = Column(Float, nullable=False, default=2.5)
    interval_days = Column(Integer, nullable=False, default=0)
    repetitions = Column(Integer, nullable=False, default=0)
    difficulty = Column(Integer)
    times_seen = Column(Integer, nullable=False, default=0)
    times_correct = Column(Integer, nullable=False, default=0)
    correct_streak = Column(Integer, nullable=False, default=0)
    wrong_streak = Column(Integer, nullable=False, default=0)
    fast_response_count = Column(Integer, nullable=False, default=0)
    slow_response_count = Column(Integer, nullable=False, default=0)
    average_response_time = Column(Integer)  # milliseconds
    last_response_time = Column(Integer)  # milliseconds
    last_result = Column(String)  # correct, wrong, skip
    last_mode = Column(String)  # flashcard, test, review
    last_reviewed_at = Column(UTCDateTime)
    next_review_at = Column(UTCDateTime, index=True)

    # Relationships
    word = relationship("Word", back_populates="progress")

    def __repr__(self) -> str:
        return (
            f"<WordProgress word={self.word_id} reps={self.repetitions} "
            f"ef={self.ease_factor} next={self.next_review_at}>"
        )


class ReviewLog(Base):
    """One row per graded answer."""

    __tablename__ = "review_logs"

    id = Column(Integer, primary_key=True)
    word_id = Column(Integer, ForeignKey("words.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(UTCDateTime, nullable=False)
    mode = Column(String, nullable=False)
    result = Column(String, nullable=False)
    grade = Column(Integer)
    response_time = Column(Integer)
    next_review_at = Column(UTCDateTime)
    ease_factor_after = Column(Float)
    interval_days_after = Column(Integer)

    # Relationships
    word = relationship("Word", back_populates="review_logs")


class ReviewPlan(Base, TimestampMixin):
    """Position of a word collection (or a learned cohort of it) on the review curve."""

    __tablename__ = "review_plans"

    id = Column(Integer, primary_key=True)
    collection_id = Column(Integer, ForeignKey("word_collections.id"), nullable=False, index=True)
    review_stage = Column(Integer, nullable=False, default=1)
    next_review_at = Column(UTCDateTime, nullable=False)
    completed_stages = Column(IntList, nullable=False, default=list)
    started_at = Column(UTCDateTime, nullable=False)
    last_completed_at = Column(UTCDateTime)
    is_completed = Column(Boolean, nullable=False, default=False)
    total_words = Column(Integer, nullable=False, default=0)
    learned_word_ids = Column(IntList)

    # Relationships
    collection = relationship("WordCollection", back_populates="review_plans")


class ReviewLock(Base):
    """The single review lock. At most one row per owner key."""

    __tablename__ = "review_locks"

    id = Column(Integer, primary_key=True)
    owner_key = Column(String, nullable=False, unique=True)
    collection_id = Column(Integer, nullable=False)
    review_stage = Column(Integer, nullable=False)
    locked_at = Column(UTCDateTime, nullable=False)


class StudySnapshot(Base):
    """Persisted state of an interrupted study session, one row per mode."""

    __tablename__ = "study_snapshots"

    mode = Column(String, primary_key=True)
    collection_id = Column(Integer)
    review_stage = Column(Integer)
    payload = Column(JSON, nullable=False)
    saved_at = Column(UTCDateTime, nullable=False)
