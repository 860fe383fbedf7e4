from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from progress_service.core.errors import ConflictError
from progress_service.models.certificate import Certificate


class CertificateRepo(Protocol):
    def get(self, cert_id: str) -> Certificate | None: ...
    def get_for(self, student_id: str, course_id: str) -> Certificate | None: ...
    def add(self, cert: Certificate) -> None: ...
    def update(self, cert: Certificate) -> None: ...
    def list_by_students(self, student_ids: Iterable[str]) -> list[Certificate]: ...


class InMemoryCertificateRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, Certificate] = {}

    def get(self, cert_id: str) -> Certificate | None:
        return self._by_id.get(cert_id)

    def get_for(self, student_id: str, course_id: str) -> Certificate | None:
        for cert in self._by_id.values():
            if cert.student_id == student_id and cert.course_id == course_id:
                return cert
        return None

    def add(self, cert: Certificate) -> None:
        if self.get_for(cert.student_id, cert.course_id) is not None:
            raise ConflictError(
                f"certificate for {cert.student_id}/{cert.course_id} already exists"
            )
        self._by_id[cert.cert_id] = cert

    def update(self, cert: Certificate) -> None:
        if cert.cert_id not in self._by_id:
            raise KeyError(cert.cert_id)
        self._by_id[cert.cert_id] = cert

    def list_by_students(self, student_ids: Iterable[str]) -> list[Certificate]:
        wanted = set(student_ids)
        certs = [c for c in self._by_id.values() if c.student_id in wanted]
        return sorted(certs, key=lambda c: c.completed_date, reverse=True)
