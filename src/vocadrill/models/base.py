"""Base model configuration."""
import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Column, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from vocadrill.config import settings
from vocadrill.exceptions import StorageUnavailableError
from vocadrill.models.types import UTCDateTime, utcnow
from vocadrill.monitoring import db_errors

logger = logging.getLogger(__name__)

# Create SQLAlchemy engine
engine = create_engine(settings.database.url, echo=settings.database.echo)


# Enforce foreign keys on SQLite so word deletion cannot leave orphans behind
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key checks for SQLite connections."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

# Create declarative base class
Base = declarative_base()


class TimestampMixin:
    """Mixin to add timestamp columns to models."""
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


@contextmanager
def storage_operation(db: Session, operation: str) -> Iterator[None]:
    """Wrap a store round trip and surface failures as StorageUnavailableError.

    The session is rolled back before the error propagates. Nothing is retried.
    """
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        db_errors.labels(operation=operation).inc()
        logger.error("Storage operation %s failed: %s", operation, e)
        raise StorageUnavailableError(
            f"Storage operation {operation} failed",
            {"operation": operation},
        ) from e


def init_db(bind: Engine = engine) -> None:
    """Initialize database."""
    # Import models so every table is registered on the metadata
    from vocadrill.models import models  # noqa: F401

    Base.metadata.create_all(bind=bind)  # Create tables if they don't exist
