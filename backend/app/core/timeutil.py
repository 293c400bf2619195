# app/core/timeutil.py
from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """
    SQLite round-trips tz-aware datetimes as naive. Treat naive values as UTC so
    comparisons behave the same on SQLite (tests/dev) and Postgres.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
