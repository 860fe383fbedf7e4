from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from progress_service.api.dependencies import Engine
from progress_service.models.certificate import Certificate

router = APIRouter(prefix="/v1/teachers", tags=["teachers"])


class RosterStudentOut(BaseModel):
    id: str
    name: str
    email: str | None
    total_xp: int
    current_level: int
    level_title: str
    completed_courses: int
    certification_tier: str
    last_active: str
    streak: int
    is_active: bool
    needs_attention: bool


class RosterSummaryOut(BaseModel):
    total_students: int
    active_today: int
    avg_xp: int
    avg_completion_rate: int


class RosterOut(BaseModel):
    success: bool = True
    teacher_id: str
    class_code: str
    students: list[RosterStudentOut]
    summary: RosterSummaryOut


class DeviceOut(BaseModel):
    device_id: str
    platform: str
    app_version: str
    device_name: str | None
    first_seen: datetime
    last_seen: datetime


class CourseProgressOut(BaseModel):
    course_id: str
    title: str
    completed_videos: int
    total_videos: int
    percentage: int


class CertificateOut(BaseModel):
    cert_id: str
    student_id: str
    student_name: str | None = None
    course_id: str
    title: str
    status: str
    completed_date: datetime
    approved_by: str | None = None
    approved_date: datetime | None = None

    @classmethod
    def from_certificate(
        cls, cert: Certificate, student_name: str | None = None
    ) -> CertificateOut:
        return cls(
            cert_id=cert.cert_id,
            student_id=cert.student_id,
            student_name=student_name,
            course_id=cert.course_id,
            title=cert.title,
            status=cert.status.value,
            completed_date=cert.completed_date,
            approved_by=cert.approved_by,
            approved_date=cert.approved_date,
        )


class StudentDetailOut(BaseModel):
    success: bool = True
    student_id: str
    name: str
    email: str | None
    class_code: str
    joined_at: datetime
    total_xp: int
    level: int
    level_title: str
    streak: int
    certification_tier: str
    devices: list[DeviceOut]
    courses: list[CourseProgressOut]
    certificates: list[CertificateOut]


class CertificateCountsOut(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int


class CertificateListOut(BaseModel):
    success: bool = True
    certificates: list[CertificateOut]
    summary: CertificateCountsOut


@router.get("/{teacher_id}/students", response_model=RosterOut)
def get_student_roster(teacher_id: str, engine: Engine) -> RosterOut:
    roster = engine.get_student_roster(teacher_id)
    return RosterOut(
        teacher_id=roster.teacher.teacher_id,
        class_code=roster.teacher.class_code,
        students=[
            RosterStudentOut(
                id=s.student_id,
                name=s.name,
                email=s.email,
                total_xp=s.total_xp,
                current_level=s.current_level,
                level_title=s.level_title,
                completed_courses=s.completed_courses,
                certification_tier=s.certification_tier.value,
                last_active=s.last_active,
                streak=s.streak,
                is_active=s.is_active,
                needs_attention=s.needs_attention,
            )
            for s in roster.students
        ],
        summary=RosterSummaryOut(
            total_students=roster.summary.total_students,
            active_today=roster.summary.active_today,
            avg_xp=roster.summary.avg_xp,
            avg_completion_rate=roster.summary.avg_completion_rate,
        ),
    )


@router.get("/{teacher_id}/students/{student_id}", response_model=StudentDetailOut)
def get_student_detail(teacher_id: str, student_id: str, engine: Engine) -> StudentDetailOut:
    detail = engine.get_student_detail(teacher_id, student_id)
    student, summary = detail.student, detail.summary
    return StudentDetailOut(
        student_id=student.student_id,
        name=student.display_name,
        email=student.email,
        class_code=student.class_code,
        joined_at=student.joined_at,
        total_xp=summary.total_xp,
        level=summary.level.number,
        level_title=summary.level.title,
        streak=summary.streak,
        certification_tier=summary.certification_tier.value,
        devices=[
            DeviceOut(
                device_id=d.device_id,
                platform=d.platform,
                app_version=d.app_version,
                device_name=d.device_name,
                first_seen=d.first_seen,
                last_seen=d.last_seen,
            )
            for d in detail.devices
        ],
        courses=[
            CourseProgressOut(
                course_id=c.course_id,
                title=c.title,
                completed_videos=c.completed_videos,
                total_videos=c.total_videos,
                percentage=c.percentage,
            )
            for c in detail.courses
        ],
        certificates=[
            CertificateOut.from_certificate(c, student.display_name)
            for c in detail.certificates
        ],
    )


@router.get("/{teacher_id}/certificates", response_model=CertificateListOut)
def get_certificates(
    teacher_id: str, engine: Engine, status: str = "all"
) -> CertificateListOut:
    listing = engine.get_certificates(teacher_id, status)
    counts = listing.summary
    return CertificateListOut(
        certificates=[
            CertificateOut.from_certificate(e.certificate, e.student_name)
            for e in listing.certificates
        ],
        summary=CertificateCountsOut(
            total=counts.total,
            pending=counts.pending,
            approved=counts.approved,
            rejected=counts.rejected,
        ),
    )
