"""Custom column types shared by the models."""
from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.types import DateTime, Text, TypeDecorator


class UTCDateTime(TypeDecorator):
    """Store datetimes in UTC and always load them timezone-aware.

    SQLite drops tzinfo on the way out, so values read back are tagged as UTC.
    Naive values written in are assumed to already be UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class IntList(TypeDecorator):
    """Persist a list of integers as a JSON array."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return None
        return json.dumps([int(item) for item in value])

    def process_result_value(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return None
        return [int(item) for item in json.loads(value)]


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)
