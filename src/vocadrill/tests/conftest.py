"""Test configuration."""
import logging
import os
from datetime import UTC, datetime
from typing import Callable, Generator, List

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["METRICS_ENABLED"] = "false"

# Load test environment variables
load_dotenv(".env.test")

# Import after environment setup
from faker import Faker  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from vocadrill.models.base import Base, init_db  # noqa: E402
from vocadrill.models.models import Word, WordCollection, WordProgress  # noqa: E402
from vocadrill.services.grading import new_progress_record  # noqa: E402
from vocadrill.services.word_service import WordService  # noqa: E402

fake = Faker()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Create an isolated in-memory database for each test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    session = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now() -> datetime:
    """A fixed point in time."""
    return datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def word_service(db: Session) -> WordService:
    """Create a word service instance."""
    return WordService(db)


@pytest.fixture
def collection(word_service: WordService) -> WordCollection:
    """Create a test collection."""
    return word_service.create_collection(fake.word().capitalize())


@pytest.fixture
def make_words(word_service: WordService, collection: WordCollection) -> Callable[..., List[Word]]:
    """Factory adding n words with unique texts to a collection."""
    fake.unique.clear()

    def _make_words(count: int, collection_id: int = None, difficulty: int = None) -> List[Word]:
        target = collection_id if collection_id is not None else collection.id
        return [
            word_service.add_word(
                target,
                text=fake.unique.word(),
                meaning=fake.sentence(nb_words=3),
                difficulty=difficulty,
            )
            for _ in range(count)
        ]

    return _make_words


@pytest.fixture
def make_progress(db: Session) -> Callable[..., WordProgress]:
    """Factory storing a mastery record with the given fields for a word."""

    def _make_progress(word: Word, **fields) -> WordProgress:
        record = new_progress_record(word.id, word.collection_id, word.difficulty)
        for name, value in fields.items():
            setattr(record, name, value)
        db.add(record)
        db.commit()
        return record

    return _make_progress


@pytest.fixture
def restore_root_logger() -> Generator[None, None, None]:
    """Put back the root handlers and level after setup_logging replaced them."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            handler.close()
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
