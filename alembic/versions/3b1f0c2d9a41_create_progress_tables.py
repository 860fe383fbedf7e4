"""create progress tables

Revision ID: 3b1f0c2d9a41
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f0c2d9a41"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "schools",
        sa.Column("school_id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("program", sa.String(length=255), nullable=False),
        sa.Column("district", sa.String(length=255), nullable=True),
    )
    op.create_table(
        "teachers",
        sa.Column("teacher_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "school_id",
            sa.String(length=64),
            sa.ForeignKey("schools.school_id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("class_code", sa.String(length=32), nullable=False, unique=True),
        sa.Column(
            "department", sa.String(length=64), nullable=False, server_default="CTE"
        ),
    )
    op.create_table(
        "students",
        sa.Column("student_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "teacher_id",
            sa.String(length=64),
            sa.ForeignKey("teachers.teacher_id"),
            nullable=False,
        ),
        sa.Column(
            "school_id",
            sa.String(length=64),
            sa.ForeignKey("schools.school_id"),
            nullable=False,
        ),
        sa.Column("first_name", sa.String(length=128), nullable=False),
        sa.Column("last_name", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("class_code", sa.String(length=32), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("teacher_id", "email", name="uq_students_teacher_email"),
    )
    op.create_index("ix_students_teacher_id", "students", ["teacher_id"])

    op.create_table(
        "devices",
        sa.Column("device_id", sa.String(length=128), primary_key=True),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("app_version", sa.String(length=32), nullable=False),
        sa.Column("device_name", sa.String(length=255), nullable=True),
        sa.Column("first_seen", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "student_id",
            sa.String(length=64),
            sa.ForeignKey("students.student_id"),
            nullable=True,
        ),
    )
    op.create_index("ix_devices_student_id", "devices", ["student_id"])

    op.create_table(
        "video_progress",
        sa.Column(
            "device_id",
            sa.String(length=128),
            sa.ForeignKey("devices.device_id"),
            primary_key=True,
        ),
        sa.Column("video_id", sa.String(length=64), primary_key=True),
        sa.Column("course_id", sa.String(length=128), nullable=False),
        sa.Column(
            "student_id",
            sa.String(length=64),
            sa.ForeignKey("students.student_id"),
            nullable=True,
        ),
        sa.Column("last_position_sec", sa.Float(), nullable=False, server_default="0"),
        sa.Column("watched_sec", sa.Float(), nullable=False, server_default="0"),
        sa.Column("duration_sec", sa.Float(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_video_progress_student_id", "video_progress", ["student_id"])

    op.create_table(
        "daily_activity",
        sa.Column(
            "device_id",
            sa.String(length=128),
            sa.ForeignKey("devices.device_id"),
            primary_key=True,
        ),
        sa.Column("day", sa.Date(), primary_key=True),
        sa.Column(
            "student_id",
            sa.String(length=64),
            sa.ForeignKey("students.student_id"),
            nullable=True,
        ),
        sa.Column("total_watched_sec", sa.Float(), nullable=False, server_default="0"),
        sa.Column("videos_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("videos_started", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_earned", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_daily_activity_student_id", "daily_activity", ["student_id"])

    op.create_table(
        "student_certificates",
        sa.Column("cert_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "student_id",
            sa.String(length=64),
            sa.ForeignKey("students.student_id"),
            nullable=False,
        ),
        sa.Column("course_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("completed_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("approved_by", sa.String(length=64), nullable=True),
        sa.Column("approved_date", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "student_id", "course_id", name="uq_certificates_student_course"
        ),
    )
    op.create_index(
        "ix_student_certificates_student_id", "student_certificates", ["student_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_student_certificates_student_id", table_name="student_certificates")
    op.drop_table("student_certificates")
    op.drop_index("ix_daily_activity_student_id", table_name="daily_activity")
    op.drop_table("daily_activity")
    op.drop_index("ix_video_progress_student_id", table_name="video_progress")
    op.drop_table("video_progress")
    op.drop_index("ix_devices_student_id", table_name="devices")
    op.drop_table("devices")
    op.drop_index("ix_students_teacher_id", table_name="students")
    op.drop_table("students")
    op.drop_table("teachers")
    op.drop_table("schools")
