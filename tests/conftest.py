from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import progress_service` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from progress_service.core.config import SETTINGS  # noqa: E402
from progress_service.db.engine import (  # noqa: E402
    build_engine,
    build_session_factory,
    create_schema,
)
from progress_service.main import create_app  # noqa: E402
from progress_service.repos.unit_of_work import InMemoryStore, SqlStore  # noqa: E402
from progress_service.services.cache import InMemoryCacheService  # noqa: E402
from progress_service.services.engine import ProgressEngine  # noqa: E402
from progress_service.services.roster import Onboarding  # noqa: E402

# Mid-afternoon UTC so "today" is the same calendar day in every test.
START = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)
CLASS_CODE = "EVT101"


class FakeClock:
    """Settable clock; services call it like ``utc_now``."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    @property
    def today(self) -> date:
        return self.now.date()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def cache() -> InMemoryCacheService:
    return InMemoryCacheService()


@pytest.fixture
def engine(store: InMemoryStore, cache: InMemoryCacheService, clock: FakeClock) -> ProgressEngine:
    return ProgressEngine(store, cache, clock=clock)


@pytest.fixture
def sql_store() -> Iterator[SqlStore]:
    db = build_engine("sqlite://")
    create_schema(db)
    yield SqlStore(build_session_factory(db))
    db.dispose()


@pytest.fixture
def sql_engine(sql_store: SqlStore, clock: FakeClock) -> ProgressEngine:
    return ProgressEngine(sql_store, InMemoryCacheService(), clock=clock)


@pytest.fixture
def client() -> Iterator[TestClient]:
    # Always the in-memory store, whatever the developer's environment says.
    settings = replace(SETTINGS, database_url=None, redis_url=None)
    with TestClient(create_app(settings)) as c:
        yield c


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


def onboard(engine: ProgressEngine, class_code: str = CLASS_CODE) -> Onboarding:
    """Create a school with one teacher owning ``class_code``."""
    return engine.onboard_school(
        school_name="Lincoln Tech",
        program_name="EV Technician Program",
        teacher_name="Dana Reyes",
        teacher_email="Dana.Reyes@lincoln.example",
        class_code=class_code,
        district="North",
    )


def watch(
    engine: ProgressEngine,
    device_id: str,
    video_id: str,
    *,
    watched: float,
    duration: float = 600.0,
    course_id: str = "",
    position: float | None = None,
    completed: bool = False,
    at: datetime | None = None,
):
    """Report one progress state for a device, as a sync push would."""
    return engine.update_video_progress(
        device_id,
        video_id,
        course_id,
        watched if position is None else position,
        watched,
        duration,
        completed_hint=completed,
        client_updated_at=at,
    )


def complete_course(engine: ProgressEngine, device_id: str, course_key: str) -> None:
    course = engine.catalog.get(course_key)
    assert course is not None
    for video_id in course.video_ids:
        watch(engine, device_id, video_id, watched=600.0, course_id=course_key)


class _Blind:
    """Repo wrapper whose read methods never find anything."""

    def __init__(self, inner, readers: tuple[str, ...]) -> None:
        self._inner = inner
        self._readers = readers

    def __getattr__(self, name: str):
        if name in self._readers:
            return lambda *args, **kwargs: None
        return getattr(self._inner, name)


class StaleFirstRead:
    """Store whose first unit of work cannot see rows already in one repo.

    Stands in for a request that read before a concurrent writer committed:
    its insert then collides with the row the other request created.
    """

    def __init__(self, inner, repo: str, *readers: str) -> None:
        self._inner = inner
        self._repo = repo
        self._readers = readers
        self.stale_reads = 1

    @contextmanager
    def begin(self):
        with self._inner.begin() as tx:
            if self.stale_reads:
                self.stale_reads -= 1
                blind = _Blind(getattr(tx, self._repo), self._readers)
                tx = replace(tx, **{self._repo: blind})
            yield tx

    def __getattr__(self, name: str):
        return getattr(self._inner, name)
