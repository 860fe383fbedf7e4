"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in progress_service/models/.
Repos convert between rows and domain dataclasses; nothing outside
repos/ sees a row object.

Column types stay portable (no postgres ARRAY/UUID) so the same
metadata runs on SQLite in tests.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from progress_service.db.engine import Base

# --- Classroom ---


class SchoolRow(Base):
    __tablename__ = "schools"

    school_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    program: Mapped[str] = mapped_column(String(255), nullable=False)
    district: Mapped[str | None] = mapped_column(String(255), nullable=True)


class TeacherRow(Base):
    __tablename__ = "teachers"

    teacher_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    school_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("schools.school_id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    class_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    department: Mapped[str] = mapped_column(String(64), nullable=False, default="CTE")


class StudentRow(Base):
    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("teacher_id", "email", name="uq_students_teacher_email"),
    )

    student_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    teacher_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("teachers.teacher_id"), nullable=False, index=True
    )
    school_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("schools.school_id"), nullable=False
    )
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    # NULLs never collide in a unique constraint, so email-less students coexist
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    class_code: Mapped[str] = mapped_column(String(32), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_active: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


# --- Devices and raw progress ---


class DeviceRow(Base):
    __tablename__ = "devices"

    device_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    app_version: Mapped[str] = mapped_column(String(32), nullable=False)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    student_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("students.student_id"), nullable=True, index=True
    )


class VideoProgressRow(Base):
    __tablename__ = "video_progress"

    device_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("devices.device_id"), primary_key=True
    )
    video_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(128), nullable=False)
    student_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("students.student_id"), nullable=True, index=True
    )
    last_position_sec: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    watched_sec: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    duration_sec: Mapped[float] = mapped_column(Float, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class DailyActivityRow(Base):
    __tablename__ = "daily_activity"

    device_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("devices.device_id"), primary_key=True
    )
    day: Mapped[date] = mapped_column(Date, primary_key=True)
    student_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("students.student_id"), nullable=True, index=True
    )
    total_watched_sec: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    videos_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    videos_started: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# --- Certificates ---


class CertificateRow(Base):
    __tablename__ = "student_certificates"
    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_certificates_student_course"),
    )

    cert_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("students.student_id"), nullable=False, index=True
    )
    course_id: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    completed_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending"
    )  # pending|approved|rejected
    approved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    approved_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
