"""Read-through cache for derived student summaries.

Flow:  read → cache → miss → recompute from stored facts → populate → return
       read → cache → hit  → return

Two complementary invalidation strategies:

  1. TTL: every entry expires after SUMMARY_CACHE_TTL seconds, so a
     missed invalidation can only serve stale data for that long.
  2. Explicit: every write that changes a student's facts (progress
     update, class join merge, certificate transition) deletes the
     student's entry before returning.

Cached values are plain JSON strings; the cache never holds facts.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import redis

from progress_service.core.metrics import CACHE_OPERATIONS

logger = logging.getLogger(__name__)


def summary_key(student_id: str) -> str:
    return f"summary:{student_id}"


@runtime_checkable
class CacheService(Protocol):
    def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...


class InMemoryCacheService:
    """In-process cache; no TTL enforcement (one process, short-lived tests)."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        value = self._store.get(key)
        CACHE_OPERATIONS.labels(operation="hit" if value is not None else "miss").inc()
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    def delete(self, key: str) -> None:
        self._store.pop(key, None)


class RedisCacheService:
    """Redis-backed cache shared across API instances.

    Redis failures degrade to cache misses; the caller recomputes.
    """

    # Key prefix keeps cache entries apart from anything else in the db.
    _PREFIX = "progress:"

    def __init__(self, redis_client: redis.Redis) -> None:
        self._redis = redis_client

    def get(self, key: str) -> str | None:
        try:
            value = self._redis.get(f"{self._PREFIX}{key}")
        except redis.RedisError:
            logger.warning("Cache get failed for %s", key)
            value = None
        CACHE_OPERATIONS.labels(operation="hit" if value is not None else "miss").inc()
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)
        except redis.RedisError:
            logger.warning("Cache set failed for %s", key)

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(f"{self._PREFIX}{key}")
        except redis.RedisError:
            # the TTL bounds how long the stale entry can be served
            CACHE_OPERATIONS.labels(operation="invalidate_failed").inc()
            logger.warning(
                "Cache invalidation failed for %s; stale for up to its TTL", key
            )


def build_cache(redis_client: redis.Redis | None) -> CacheService:
    if redis_client is not None:
        return RedisCacheService(redis_client)
    return InMemoryCacheService()
