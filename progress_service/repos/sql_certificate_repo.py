"""SQL implementation of CertificateRepo."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_service.db.tables import CertificateRow
from progress_service.models.certificate import Certificate, CertificateStatus
from progress_service.repos.sql_common import as_utc, insert_or_conflict


class SqlCertificateRepo:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, cert_id: str) -> Certificate | None:
        row = self._session.get(CertificateRow, cert_id)
        if row is None:
            return None
        return _row_to_certificate(row)

    def get_for(self, student_id: str, course_id: str) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.student_id == student_id,
            CertificateRow.course_id == course_id,
        )
        row = self._session.scalars(stmt).one_or_none()
        if row is None:
            return None
        return _row_to_certificate(row)

    def add(self, cert: Certificate) -> None:
        insert_or_conflict(
            self._session,
            CertificateRow(
                cert_id=cert.cert_id,
                student_id=cert.student_id,
                course_id=cert.course_id,
                title=cert.title,
                completed_date=cert.completed_date,
                status=cert.status.value,
                approved_by=cert.approved_by,
                approved_date=cert.approved_date,
            ),
            f"certificate for {cert.student_id}/{cert.course_id} already exists",
        )

    def update(self, cert: Certificate) -> None:
        row = self._session.get(CertificateRow, cert.cert_id)
        if row is None:
            raise KeyError(cert.cert_id)
        row.status = cert.status.value
        row.approved_by = cert.approved_by
        row.approved_date = cert.approved_date
        self._session.flush()

    def list_by_students(self, student_ids: Iterable[str]) -> list[Certificate]:
        wanted = list(student_ids)
        if not wanted:
            return []
        stmt = (
            select(CertificateRow)
            .where(CertificateRow.student_id.in_(wanted))
            .order_by(CertificateRow.completed_date.desc())
        )
        return [_row_to_certificate(r) for r in self._session.scalars(stmt)]


def _row_to_certificate(row: CertificateRow) -> Certificate:
    return Certificate(
        cert_id=row.cert_id,
        student_id=row.student_id,
        course_id=row.course_id,
        title=row.title,
        completed_date=as_utc(row.completed_date),
        status=CertificateStatus(row.status),
        approved_by=row.approved_by,
        approved_date=as_utc(row.approved_date),
    )
