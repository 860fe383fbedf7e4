"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured the lifespan hook
creates a client with its own connection pool; when it is None (local
dev, tests) the hook yields None and the summary cache stays in process.

Redis only ever holds derived, recomputable data here (cached student
summaries), so losing it costs a recomputation, never a fact.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import redis

logger = logging.getLogger(__name__)


def build_redis(redis_url: str) -> redis.Redis:
    return redis.Redis.from_url(
        redis_url,
        decode_responses=True,  # str instead of bytes
        max_connections=20,
        socket_timeout=2.0,
    )


@contextmanager
def lifespan_redis(redis_url: str | None) -> Iterator[redis.Redis | None]:
    """Startup/shutdown hook for Redis; mirrors lifespan_db()."""
    if not redis_url:
        logger.info("No REDIS_URL configured; summary cache is in-process")
        yield None
        return

    client = build_redis(redis_url)
    try:
        client.ping()
        logger.info("Redis connected")
    except redis.RedisError:
        # Start anyway; cache operations degrade to misses until Redis is back.
        logger.exception("Redis connection failed on startup")

    try:
        yield client
    finally:
        client.close()
        logger.info("Redis connection pool closed")
