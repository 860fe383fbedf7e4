"""Transactional access to every repository at once.

Services never hold a repo across calls.  They open a unit of work,
read and write through the repos it yields, and either the whole block
commits or none of it does:

    with store.begin() as tx:
        device = tx.devices.get(device_id)
        ...

InMemoryStore serialises blocks with a re-entrant lock and restores a
snapshot when the block raises.  SqlStore maps the block onto one
SQLAlchemy session transaction; losing the database mid-block surfaces
as TransientError so the API can answer 503 and the device retries.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from progress_service.core.errors import TransientError
from progress_service.repos.certificate_repo import (
    CertificateRepo,
    InMemoryCertificateRepo,
)
from progress_service.repos.class_repo import ClassRepo, InMemoryClassRepo
from progress_service.repos.device_repo import DeviceRepo, InMemoryDeviceRepo
from progress_service.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from progress_service.repos.sql_certificate_repo import SqlCertificateRepo
from progress_service.repos.sql_class_repo import SqlClassRepo
from progress_service.repos.sql_device_repo import SqlDeviceRepo
from progress_service.repos.sql_progress_repo import SqlProgressRepo
from progress_service.repos.sql_student_repo import SqlStudentRepo
from progress_service.repos.student_repo import InMemoryStudentRepo, StudentRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Repos:
    devices: DeviceRepo
    students: StudentRepo
    classes: ClassRepo
    progress: ProgressRepo
    certificates: CertificateRepo


class Store(Protocol):
    def begin(self) -> AbstractContextManager[Repos]: ...
    def ping(self) -> bool: ...


class InMemoryStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._repos = Repos(
            devices=InMemoryDeviceRepo(),
            students=InMemoryStudentRepo(),
            classes=InMemoryClassRepo(),
            progress=InMemoryProgressRepo(),
            certificates=InMemoryCertificateRepo(),
        )

    @contextmanager
    def begin(self) -> Iterator[Repos]:
        with self._lock:
            saved = self._snapshot()
            try:
                yield self._repos
            except BaseException:
                self._restore(saved)
                raise

    def ping(self) -> bool:
        return True

    def _snapshot(self) -> list[tuple[object, dict]]:
        # Repos hold only dicts of frozen dataclasses; copying the dicts is enough.
        return [
            (repo, {name: dict(value) for name, value in vars(repo).items()})
            for repo in self._all()
        ]

    def _restore(self, saved: list[tuple[object, dict]]) -> None:
        for repo, state in saved:
            for name, value in state.items():
                setattr(repo, name, value)

    def _all(self) -> list[object]:
        r = self._repos
        return [r.devices, r.students, r.classes, r.progress, r.certificates]


class SqlStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def begin(self) -> Iterator[Repos]:
        try:
            with self._session_factory() as session, session.begin():
                yield Repos(
                    devices=SqlDeviceRepo(session),
                    students=SqlStudentRepo(session),
                    classes=SqlClassRepo(session),
                    progress=SqlProgressRepo(session),
                    certificates=SqlCertificateRepo(session),
                )
        except (OperationalError, InterfaceError) as exc:
            logger.warning("Database unavailable: %s", exc.__class__.__name__)
            raise TransientError("progress store temporarily unavailable") from exc

    def ping(self) -> bool:
        try:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
        except (OperationalError, InterfaceError):
            return False
        return True
