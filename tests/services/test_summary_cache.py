from __future__ import annotations

import logging

import pytest
import redis
from prometheus_client import REGISTRY

from progress_service.services.cache import (
    InMemoryCacheService,
    RedisCacheService,
    build_cache,
    summary_key,
)
from progress_service.services.engine import ProgressEngine
from tests.conftest import CLASS_CODE, onboard, watch


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


class _FakeRedis:
    """Just enough of redis.Redis for the cache service."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class _DownRedis:
    def get(self, *args):
        raise redis.ConnectionError("connection refused")

    setex = delete = get


def test_build_cache_picks_backend() -> None:
    assert isinstance(build_cache(None), InMemoryCacheService)
    assert isinstance(build_cache(_FakeRedis()), RedisCacheService)


def test_redis_cache_prefixes_keys_and_sets_ttl() -> None:
    fake = _FakeRedis()
    cache = RedisCacheService(fake)
    cache.set(summary_key("student-1"), "{}", 300)
    assert fake.ttls == {"progress:summary:student-1": 300}
    assert cache.get("summary:student-1") == "{}"
    cache.delete("summary:student-1")
    assert cache.get("summary:student-1") is None


def test_redis_outage_degrades_to_a_miss() -> None:
    cache = RedisCacheService(_DownRedis())
    before = _get_sample("cache_operations_total", {"operation": "miss"})
    assert cache.get("summary:student-1") is None
    cache.set("summary:student-1", "{}", 300)
    cache.delete("summary:student-1")
    after = _get_sample("cache_operations_total", {"operation": "miss"})
    assert after - before == 1


def test_failed_invalidation_is_counted_and_logged(caplog: pytest.LogCaptureFixture) -> None:
    cache = RedisCacheService(_DownRedis())
    before = _get_sample("cache_operations_total", {"operation": "invalidate_failed"})
    with caplog.at_level(logging.WARNING, logger="progress_service.services.cache"):
        cache.delete(summary_key("student-1"))
    after = _get_sample("cache_operations_total", {"operation": "invalidate_failed"})

    assert after - before == 1
    assert any("summary:student-1" in r.getMessage() for r in caplog.records)


def test_summary_is_read_through_cached(engine: ProgressEngine) -> None:
    onboard(engine)
    joined = engine.join_class("dev-1", CLASS_CODE, "Sam", "Lee")

    before = _get_sample("cache_operations_total", {"operation": "hit"})
    first = engine.get_student_summary(joined.student_id)
    second = engine.get_student_summary(joined.student_id)
    after = _get_sample("cache_operations_total", {"operation": "hit"})

    assert first == second
    assert after - before == 1


def test_summary_works_while_redis_is_down(engine: ProgressEngine) -> None:
    onboard(engine)
    joined = engine.join_class("dev-1", CLASS_CODE, "Sam", "Lee")
    watch(engine, "dev-1", "1-1", watched=600.0)

    degraded = ProgressEngine(engine.store, RedisCacheService(_DownRedis()))
    assert degraded.get_student_summary(joined.student_id)["videos_completed"] == 1
