"""Helpers shared by the SQLAlchemy repositories."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from progress_service.core.errors import ConflictError
from progress_service.db.engine import Base


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes even for timezone-aware columns."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def insert_or_conflict(session: Session, row: Base, message: str) -> None:
    """Insert inside a savepoint so a unique violation leaves the outer
    transaction usable, and surface it as ConflictError."""
    try:
        with session.begin_nested():
            session.add(row)
    except IntegrityError as exc:
        raise ConflictError(message) from exc
