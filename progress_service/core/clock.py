from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, tzinfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def local_day(moment: datetime, tz: tzinfo) -> date:
    """Calendar day of ``moment`` in the activity timezone."""
    return moment.astimezone(tz).date()
