"""SQLAlchemy engine and session factory.

When DATABASE_URL is configured the lifespan hook builds:
- a sync engine (PostgreSQL via psycopg in production, SQLite locally)
- a session factory handed to ``SqlStore``

When DATABASE_URL is None the hook yields None and the app falls back
to the in-memory store.  Nothing is created at import time, so tests
can point the service at a throwaway SQLite database per test.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            # one shared connection, otherwise every checkout sees an empty db
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
        _fix_pysqlite_transactions(engine)
        return engine
    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_schema(engine: Engine) -> None:
    from progress_service.db import tables  # noqa: F401  (registers the rows)

    Base.metadata.create_all(engine)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)


@contextmanager
def lifespan_db(
    database_url: str | None, *, echo: bool = False
) -> Iterator[sessionmaker[Session] | None]:
    """Startup/shutdown hook for the database engine.

    Called from FastAPI's lifespan context manager.
    """
    if not database_url:
        logger.info("No DATABASE_URL configured; using the in-memory store")
        yield None
        return

    engine = build_engine(database_url, echo=echo)
    logger.info("Database engine created: %s", engine.url.render_as_string())
    if engine.dialect.name == "sqlite":
        # SQLite is for local runs only; Postgres schema is owned by Alembic.
        create_schema(engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()
        logger.info("Database engine disposed")


def _fix_pysqlite_transactions(engine: Engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; take over.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")
