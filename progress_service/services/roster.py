"""Teacher-facing views: class roster, student detail, school onboarding.

Every number shown to a teacher is derived through the aggregator from
stored facts, so the roster always agrees with what the student's own
device shows once it has synced.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo

from progress_service.core.clock import Clock, local_day, utc_now
from progress_service.core.errors import NotFoundError, ValidationError
from progress_service.models.certificate import Certificate, CertificateStatus
from progress_service.models.classroom import School, Teacher
from progress_service.models.device import Device
from progress_service.models.student import Student
from progress_service.repos.unit_of_work import Repos, Store
from progress_service.services import aggregator
from progress_service.services.aggregator import CertificationTier, ProgressSummary
from progress_service.services.catalog import DEFAULT_CATALOG, CourseCatalog

logger = logging.getLogger(__name__)

INACTIVE_AFTER_DAYS = 7
LOW_XP_THRESHOLD = 100


def format_last_active(days_since: float) -> str:
    if days_since < 0.02:
        return "Just now"
    if days_since < 0.04:
        return "Few minutes ago"
    if days_since < 1:
        return f"{max(1, math.floor(days_since * 24))} hours ago"
    if days_since < 2:
        return "Yesterday"
    if days_since < 7:
        return f"{math.floor(days_since)} days ago"
    if days_since < 30:
        return f"{math.floor(days_since / 7)} weeks ago"
    return f"{math.floor(days_since / 30)} months ago"


@dataclass(frozen=True, slots=True)
class RosterEntry:
    student_id: str
    name: str
    email: str | None
    total_xp: int
    current_level: int
    level_title: str
    completed_courses: int
    certification_tier: CertificationTier
    last_active: str
    streak: int
    is_active: bool
    needs_attention: bool


@dataclass(frozen=True, slots=True)
class RosterSummary:
    total_students: int
    active_today: int
    avg_xp: int
    avg_completion_rate: int


@dataclass(frozen=True, slots=True)
class Roster:
    teacher: Teacher
    students: list[RosterEntry]
    summary: RosterSummary


@dataclass(frozen=True, slots=True)
class CourseProgress:
    course_id: str
    title: str
    completed_videos: int
    total_videos: int

    @property
    def percentage(self) -> int:
        if self.total_videos <= 0:
            return 0
        return self.completed_videos * 100 // self.total_videos


@dataclass(frozen=True, slots=True)
class StudentDetail:
    student: Student
    devices: list[Device]
    summary: ProgressSummary
    courses: list[CourseProgress]
    certificates: list[Certificate]


@dataclass(frozen=True, slots=True)
class Onboarding:
    school: School
    teacher: Teacher


class RosterService:
    def __init__(
        self,
        store: Store,
        *,
        tz: tzinfo = UTC,
        window_days: int = aggregator.DEFAULT_STREAK_WINDOW_DAYS,
        catalog: CourseCatalog = DEFAULT_CATALOG,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._tz = tz
        self._window_days = window_days
        self._catalog = catalog
        self._clock = clock

    def summarize_student(self, tx: Repos, student_id: str, now: datetime) -> ProgressSummary:
        return aggregator.summarize(
            tx.progress.list_videos_by_student(student_id),
            tx.progress.list_activity_by_student(student_id),
            local_day(now, self._tz),
            catalog=self._catalog,
            window_days=self._window_days,
            student_id=student_id,
        )

    def get_student_roster(self, teacher_id: str, now: datetime | None = None) -> Roster:
        now = now or self._clock()
        entries: list[tuple[Student, RosterEntry]] = []
        with self._store.begin() as tx:
            teacher = tx.classes.get_teacher(teacher_id)
            if teacher is None:
                raise NotFoundError("Teacher not found")
            students = tx.students.list_by_teacher(teacher_id)
            for student in students:
                entries.append((student, self._entry(tx, student, now)))
            approved = sum(
                1
                for c in tx.certificates.list_by_students(s.student_id for s in students)
                if c.status is CertificateStatus.APPROVED
            )

        entries.sort(key=lambda pair: pair[0].last_active, reverse=True)
        rows = [entry for _, entry in entries]
        possible = len(rows) * len(self._catalog)
        summary = RosterSummary(
            total_students=len(rows),
            active_today=sum(1 for r in rows if r.is_active),
            avg_xp=sum(r.total_xp for r in rows) // len(rows) if rows else 0,
            avg_completion_rate=approved * 100 // possible if possible else 0,
        )
        return Roster(teacher=teacher, students=rows, summary=summary)

    def get_student_detail(
        self, teacher_id: str, student_id: str, now: datetime | None = None
    ) -> StudentDetail:
        now = now or self._clock()
        with self._store.begin() as tx:
            student = tx.students.get(student_id)
            if student is None or student.teacher_id != teacher_id:
                raise NotFoundError("Student not found")
            devices = tx.devices.list_by_student(student_id)
            summary = self.summarize_student(tx, student_id, now)
            certificates = tx.certificates.list_by_students([student_id])

        courses = []
        for state in summary.courses:
            course = self._catalog.get(state.course_id)
            courses.append(
                CourseProgress(
                    course_id=state.course_id,
                    title=course.title if course else state.course_id,
                    completed_videos=state.completed_videos,
                    total_videos=state.total_videos_required,
                )
            )
        return StudentDetail(
            student=student,
            devices=devices,
            summary=summary,
            courses=courses,
            certificates=certificates,
        )

    def onboard_school(
        self,
        school_name: str,
        program_name: str,
        teacher_name: str,
        teacher_email: str,
        class_code: str,
        district: str | None = None,
    ) -> Onboarding:
        required = {
            "school_name": school_name,
            "program_name": program_name,
            "teacher_name": teacher_name,
            "teacher_email": teacher_email,
            "class_code": class_code,
        }
        for field_name, value in required.items():
            if not (value or "").strip():
                raise ValidationError(f"{field_name} is required")

        school = School.new(
            name=school_name.strip(), program=program_name.strip(), district=district
        )
        teacher = Teacher.new(
            school_id=school.school_id,
            name=teacher_name.strip(),
            email=teacher_email,
            class_code=class_code,
        )
        with self._store.begin() as tx:
            tx.classes.add_school(school)
            # raises ConflictError for a class code already in use
            tx.classes.add_teacher(teacher)

        logger.info(
            "Onboarded school %s with teacher %s (class %s)",
            school.school_id,
            teacher.teacher_id,
            teacher.class_code,
        )
        return Onboarding(school=school, teacher=teacher)

    def _entry(self, tx: Repos, student: Student, now: datetime) -> RosterEntry:
        videos = tx.progress.list_videos_by_student(student.student_id)
        summary = self.summarize_student(tx, student.student_id, now)
        last_seen = max([student.last_active, *(v.updated_at for v in videos)])
        days_since = max((now - last_seen).total_seconds(), 0.0) / 86400
        return RosterEntry(
            student_id=student.student_id,
            name=student.display_name,
            email=student.email,
            total_xp=summary.total_xp,
            current_level=summary.level.number,
            level_title=summary.level.title,
            completed_courses=len(summary.completed_courses),
            certification_tier=summary.certification_tier,
            last_active=format_last_active(days_since),
            streak=summary.streak,
            is_active=days_since < 1,
            needs_attention=days_since > INACTIVE_AFTER_DAYS
            or summary.total_xp < LOW_XP_THRESHOLD,
        )
