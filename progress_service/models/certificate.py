from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4


class CertificateStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def target_status(self) -> CertificateStatus:
        if self is ReviewAction.APPROVE:
            return CertificateStatus.APPROVED
        return CertificateStatus.REJECTED


@dataclass(frozen=True, slots=True)
class Certificate:
    """Issued course certificate.  At most one per (student_id, course_id)."""

    cert_id: str
    student_id: str
    course_id: str
    title: str
    completed_date: datetime
    status: CertificateStatus = CertificateStatus.PENDING
    approved_by: str | None = None
    approved_date: datetime | None = None

    @staticmethod
    def new(
        *, student_id: str, course_id: str, title: str, completed_date: datetime
    ) -> Certificate:
        return Certificate(
            cert_id=f"cert-{uuid4().hex}",
            student_id=student_id,
            course_id=course_id,
            title=title,
            completed_date=completed_date,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status is not CertificateStatus.PENDING
