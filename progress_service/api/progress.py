"""Device-facing endpoints: registration, class join, progress sync.

Every write is idempotent so a device can retry blindly after a
timeout:
  register-device  -> upsert by device_id
  join-class       -> same (device, email) always lands on the same student
  video / sync     -> merged against the stored record, never double counted

Reads: a joined student's summary, or a device's own stored records at any time.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from progress_service.api.dependencies import Engine
from progress_service.services.ingestion import ProgressUpdate

router = APIRouter(prefix="/v1/progress", tags=["progress"])


class RegisterDeviceIn(BaseModel):
    device_id: str
    platform: str
    app_version: str = "1.0.0"
    device_name: str | None = None


class RegisterDeviceOut(BaseModel):
    success: bool = True
    device_id: str
    student_id: str | None = None


class JoinClassIn(BaseModel):
    device_id: str
    class_code: str
    first_name: str
    last_name: str = ""
    email: str | None = None


class ClassDetailsOut(BaseModel):
    teacher_name: str
    teacher_email: str
    school_name: str
    program_name: str
    class_code: str


class JoinClassOut(BaseModel):
    success: bool = True
    student_id: str
    teacher_id: str
    school_id: str
    class_details: ClassDetailsOut
    merged_records: int


class VideoProgressIn(BaseModel):
    device_id: str
    video_id: str
    course_id: str = ""
    last_position_sec: float = 0.0
    watched_sec: float = Field(default=0.0, ge=0)
    total_duration_sec: float
    completed: bool = False
    updated_at: datetime | None = None


class VideoProgressOut(BaseModel):
    success: bool = True
    progress_percentage: int
    completed: bool
    certificate_issued: bool = False


class SyncItemIn(BaseModel):
    video_id: str
    course_id: str = ""
    last_position_sec: float = 0.0
    watched_sec: float = Field(default=0.0, ge=0)
    total_duration_sec: float
    completed: bool = False
    updated_at: datetime | None = None


class SyncIn(BaseModel):
    device_id: str
    items: list[SyncItemIn] = Field(default_factory=list, max_length=500)


class SyncItemOut(BaseModel):
    index: int
    video_id: str
    accepted: bool
    progress_percentage: int | None = None
    completed: bool | None = None
    error: str | None = None


class SyncOut(BaseModel):
    success: bool = True
    accepted: int
    rejected: int
    results: list[SyncItemOut]


class LevelProgressOut(BaseModel):
    current: int
    needed: int
    fraction: float


class CourseStateOut(BaseModel):
    course_id: str
    completed_videos: int
    total_videos: int
    is_completed: bool


class StudentSummaryOut(BaseModel):
    student_id: str
    total_xp: int
    streak: int
    level: int
    level_title: str
    level_progress: LevelProgressOut
    certification_tier: str
    certification_title: str
    completed_courses: list[str]
    videos_completed: int
    total_watched_sec: float
    courses: list[CourseStateOut]


class VideoRecordOut(BaseModel):
    video_id: str
    course_id: str
    last_position_sec: float
    watched_sec: float
    duration_sec: float
    progress_percentage: int
    completed: bool
    completed_at: datetime | None
    updated_at: datetime


class DeviceProgressOut(BaseModel):
    success: bool = True
    device_id: str
    student_id: str | None
    videos: list[VideoRecordOut]
    completed_videos: list[str]
    total_xp: int
    streak: int
    level: int
    total_watched_sec: float
    completed_courses: list[str]
    course: CourseStateOut | None = None


@router.post("/register-device", response_model=RegisterDeviceOut)
def register_device(body: RegisterDeviceIn, engine: Engine) -> RegisterDeviceOut:
    device = engine.register_device(
        body.device_id, body.platform, body.app_version, body.device_name
    )
    return RegisterDeviceOut(device_id=device.device_id, student_id=device.student_id)


@router.post("/join-class", response_model=JoinClassOut)
def join_class(body: JoinClassIn, engine: Engine) -> JoinClassOut:
    result = engine.join_class(
        body.device_id, body.class_code, body.first_name, body.last_name, body.email
    )
    d = result.class_details
    return JoinClassOut(
        student_id=result.student_id,
        teacher_id=result.teacher_id,
        school_id=result.school_id,
        class_details=ClassDetailsOut(
            teacher_name=d.teacher_name,
            teacher_email=d.teacher_email,
            school_name=d.school_name,
            program_name=d.program_name,
            class_code=d.class_code,
        ),
        merged_records=result.merged_records,
    )


@router.post("/video", response_model=VideoProgressOut)
def update_video_progress(body: VideoProgressIn, engine: Engine) -> VideoProgressOut:
    result = engine.update_video_progress(
        body.device_id,
        body.video_id,
        body.course_id,
        body.last_position_sec,
        body.watched_sec,
        body.total_duration_sec,
        completed_hint=body.completed,
        client_updated_at=body.updated_at,
    )
    return VideoProgressOut(
        progress_percentage=result.progress_percentage,
        completed=result.completed,
        certificate_issued=result.certificate is not None,
    )


@router.post("/sync", response_model=SyncOut)
def sync_progress(body: SyncIn, engine: Engine) -> SyncOut:
    results = engine.sync_batch(
        body.device_id,
        [
            ProgressUpdate(
                video_id=item.video_id,
                course_id=item.course_id,
                last_position_sec=item.last_position_sec,
                watched_sec=item.watched_sec,
                total_duration_sec=item.total_duration_sec,
                completed_hint=item.completed,
                client_updated_at=item.updated_at,
            )
            for item in body.items
        ],
    )
    out = [
        SyncItemOut(
            index=r.index,
            video_id=r.video_id,
            accepted=r.accepted,
            progress_percentage=r.result.progress_percentage if r.result else None,
            completed=r.result.completed if r.result else None,
            error=r.error,
        )
        for r in results
    ]
    accepted = sum(1 for r in out if r.accepted)
    return SyncOut(accepted=accepted, rejected=len(out) - accepted, results=out)


@router.get("/students/{student_id}/summary", response_model=StudentSummaryOut)
def get_student_summary(student_id: str, engine: Engine) -> StudentSummaryOut:
    """Derived XP, level, streak and tier; read-through cached per student."""
    return StudentSummaryOut(**engine.get_student_summary(student_id))


@router.get("/devices/{device_id}", response_model=DeviceProgressOut)
def get_device_progress(
    device_id: str, engine: Engine, course_id: str | None = None
) -> DeviceProgressOut:
    """Everything stored for one device, bound or not; lets a fresh install restore."""
    progress = engine.get_device_progress(device_id, course_id)
    summary = progress.summary
    course = progress.course
    return DeviceProgressOut(
        device_id=progress.device.device_id,
        student_id=progress.device.student_id,
        videos=[
            VideoRecordOut(
                video_id=v.video_id,
                course_id=v.course_id,
                last_position_sec=v.last_position_sec,
                watched_sec=v.watched_sec,
                duration_sec=v.duration_sec,
                progress_percentage=v.progress_percentage,
                completed=v.completed,
                completed_at=v.completed_at,
                updated_at=v.updated_at,
            )
            for v in progress.videos
        ],
        completed_videos=[v.video_id for v in progress.videos if v.completed],
        total_xp=summary.total_xp,
        streak=summary.streak,
        level=summary.level.number,
        total_watched_sec=summary.total_watched_sec,
        completed_courses=list(summary.completed_courses),
        course=CourseStateOut(
            course_id=course.course_id,
            completed_videos=course.completed_videos,
            total_videos=course.total_videos_required,
            is_completed=course.is_completed,
        )
        if course
        else None,
    )
