from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from progress_service.api.dependencies import Engine
from progress_service.api.teachers import CertificateOut
from progress_service.models.certificate import ReviewAction

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class ReviewIn(BaseModel):
    action: ReviewAction
    teacher_id: str


class ReviewOut(BaseModel):
    success: bool = True
    certificate: CertificateOut


@router.post("/{cert_id}/review", response_model=ReviewOut)
def review_certificate(cert_id: str, body: ReviewIn, engine: Engine) -> ReviewOut:
    """Approve or reject a pending certificate.  Terminal states answer 409."""
    cert = engine.review_certificate(cert_id, body.action, body.teacher_id)
    return ReviewOut(certificate=CertificateOut.from_certificate(cert))
