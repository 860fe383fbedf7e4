"""Certificate issuance and teacher review.

Issuance is driven by derived completion state and is idempotent: the
check can run after every completed video, after every class-join merge
and again on replays without ever producing a second certificate for
the same (student, course).  The storage uniqueness rule settles races
between two concurrent checks; the loser sees ConflictError and treats
it as "already issued".

Review is a one-shot transition out of PENDING.  Approved and rejected
certificates are terminal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from progress_service.core.clock import Clock, utc_now
from progress_service.core.errors import ConflictError, NotFoundError, ValidationError
from progress_service.core.metrics import CERTIFICATE_TRANSITIONS
from progress_service.models.certificate import (
    Certificate,
    CertificateStatus,
    ReviewAction,
)
from progress_service.repos.unit_of_work import Repos, Store
from progress_service.services.aggregator import (
    completed_video_count,
    fold_video_progress,
)
from progress_service.services.catalog import DEFAULT_CATALOG, CourseCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CertificateEntry:
    certificate: Certificate
    student_name: str


@dataclass(frozen=True, slots=True)
class CertificateCounts:
    total: int
    pending: int
    approved: int
    rejected: int


@dataclass(frozen=True, slots=True)
class CertificateListing:
    certificates: list[CertificateEntry]
    summary: CertificateCounts


class CertificateWorkflow:
    def __init__(
        self,
        store: Store,
        *,
        catalog: CourseCatalog = DEFAULT_CATALOG,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._clock = clock

    def check_and_issue(self, student_id: str, course_id: str) -> Certificate | None:
        with self._store.begin() as tx:
            return self.check_and_issue_in(tx, student_id, course_id, self._clock())

    def check_and_issue_in(
        self, tx: Repos, student_id: str, course_id: str, now: datetime
    ) -> Certificate | None:
        """Issue a pending certificate inside an open unit of work.

        Returns the new certificate, or None when nothing was issued
        (course unknown, threshold not met, or already issued).
        """
        canonical = self._catalog.canonical_course_id(course_id)
        course = self._catalog.get(canonical) if canonical else None
        if course is None:
            return None
        if tx.certificates.get_for(student_id, course.key) is not None:
            return None

        facts = fold_video_progress(
            tx.progress.list_videos_by_student(student_id), self._catalog
        )
        if completed_video_count(facts, course.key, self._catalog) < (
            course.certificate_threshold
        ):
            return None

        cert = Certificate.new(
            student_id=student_id,
            course_id=course.key,
            title=course.certificate_title,
            completed_date=now,
        )
        try:
            tx.certificates.add(cert)
        except ConflictError:
            logger.info(
                "Certificate for %s/%s issued concurrently; skipping",
                student_id,
                course.key,
                extra={"student_id": student_id},
            )
            return None

        CERTIFICATE_TRANSITIONS.labels(to_status=CertificateStatus.PENDING.value).inc()
        logger.info(
            "Issued pending certificate %s for %s/%s",
            cert.cert_id,
            student_id,
            course.key,
            extra={"student_id": student_id},
        )
        return cert

    def review(
        self, cert_id: str, action: ReviewAction | str, teacher_id: str
    ) -> Certificate:
        try:
            action = ReviewAction(action)
        except ValueError:
            raise ValidationError(f"unknown review action {action!r}") from None

        with self._store.begin() as tx:
            cert = tx.certificates.get(cert_id)
            student = tx.students.get(cert.student_id) if cert else None
            # A certificate outside the teacher's roster is reported as missing.
            if cert is None or student is None or student.teacher_id != teacher_id:
                raise NotFoundError("Certificate not found")
            if cert.is_terminal:
                raise ConflictError(f"certificate is already {cert.status.value}")

            updated = replace(
                cert,
                status=action.target_status,
                approved_by=teacher_id,
                approved_date=self._clock(),
            )
            tx.certificates.update(updated)

        CERTIFICATE_TRANSITIONS.labels(to_status=updated.status.value).inc()
        logger.info(
            "Certificate %s %s by %s",
            cert_id,
            updated.status.value,
            teacher_id,
            extra={"student_id": updated.student_id},
        )
        return updated

    def list_for_teacher(
        self, teacher_id: str, status: CertificateStatus | str | None = None
    ) -> CertificateListing:
        if status in (None, "", "all"):
            wanted = None
        else:
            try:
                wanted = CertificateStatus(status)
            except ValueError:
                raise ValidationError(f"unknown certificate status {status!r}") from None

        with self._store.begin() as tx:
            if tx.classes.get_teacher(teacher_id) is None:
                raise NotFoundError("Teacher not found")
            students = {s.student_id: s for s in tx.students.list_by_teacher(teacher_id)}
            certs = tx.certificates.list_by_students(students)

        counts = CertificateCounts(
            total=len(certs),
            pending=sum(1 for c in certs if c.status is CertificateStatus.PENDING),
            approved=sum(1 for c in certs if c.status is CertificateStatus.APPROVED),
            rejected=sum(1 for c in certs if c.status is CertificateStatus.REJECTED),
        )
        entries = [
            CertificateEntry(certificate=c, student_name=students[c.student_id].display_name)
            for c in certs
            if wanted is None or c.status is wanted
        ]
        return CertificateListing(certificates=entries, summary=counts)
