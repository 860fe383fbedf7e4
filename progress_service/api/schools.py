from __future__ import annotations

from fastapi import APIRouter, status
from pydantic import BaseModel

from progress_service.api.dependencies import Engine

router = APIRouter(prefix="/v1/schools", tags=["schools"])


class OnboardIn(BaseModel):
    school_name: str
    program_name: str
    teacher_name: str
    teacher_email: str
    class_code: str
    district: str | None = None


class OnboardOut(BaseModel):
    success: bool = True
    school_id: str
    teacher_id: str
    class_code: str


@router.post("/onboard", response_model=OnboardOut, status_code=status.HTTP_201_CREATED)
def onboard_school(body: OnboardIn, engine: Engine) -> OnboardOut:
    result = engine.onboard_school(
        body.school_name,
        body.program_name,
        body.teacher_name,
        body.teacher_email,
        body.class_code,
        body.district,
    )
    return OnboardOut(
        school_id=result.school.school_id,
        teacher_id=result.teacher.teacher_id,
        class_code=result.teacher.class_code,
    )
