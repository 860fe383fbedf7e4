"""The SQL store must behave exactly like the in-memory one.

Runs against in-memory SQLite; the same metadata is used for Postgres.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from progress_service.core.errors import ConflictError, TransientError
from progress_service.models.certificate import Certificate
from progress_service.models.classroom import School, Teacher
from progress_service.models.device import Device
from progress_service.models.progress import DailyActivityRecord, VideoProgressRecord
from progress_service.models.student import Student
from progress_service.repos.unit_of_work import SqlStore
from progress_service.services.engine import ProgressEngine
from progress_service.services.ingestion import ProgressIngestion
from tests.conftest import (
    CLASS_CODE,
    FakeClock,
    StaleFirstRead,
    complete_course,
    onboard,
    watch,
)

T0 = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _seed_class(store: SqlStore) -> Teacher:
    school = School.new(name="Lincoln Tech", program="EV")
    teacher = Teacher.new(
        school_id=school.school_id, name="Dana", email="dana@x.example", class_code="ABC123"
    )
    with store.begin() as tx:
        tx.classes.add_school(school)
        tx.classes.add_teacher(teacher)
    return teacher


def _student(teacher: Teacher, student_id: str, email: str | None) -> Student:
    return Student(
        student_id=student_id,
        teacher_id=teacher.teacher_id,
        school_id=teacher.school_id,
        first_name="Sam",
        last_name="Lee",
        class_code=teacher.class_code,
        joined_at=T0,
        last_active=T0,
        email=email,
    )


def _video(device_id: str, video_id: str, student_id: str | None = None) -> VideoProgressRecord:
    return VideoProgressRecord(
        video_id=video_id,
        course_id="course-hv-safety",
        device_id=device_id,
        student_id=student_id,
        last_position_sec=30.0,
        watched_sec=30.0,
        duration_sec=600.0,
        updated_at=T0,
    )


# ---- repos ----


def test_round_trip_keeps_utc_datetimes(sql_store: SqlStore) -> None:
    teacher = _seed_class(sql_store)
    with sql_store.begin() as tx:
        tx.students.add(_student(teacher, "student-1", "sam@example.com"))

    with sql_store.begin() as tx:
        student = tx.students.get("student-1")
        assert student is not None
        assert student.joined_at == T0
        assert student.joined_at.tzinfo is not None
        assert tx.students.get_by_email(teacher.teacher_id, "sam@example.com") == student
        assert tx.classes.get_teacher_by_class_code("ABC123") == teacher


def test_duplicate_email_conflicts_but_transaction_survives(sql_store: SqlStore) -> None:
    teacher = _seed_class(sql_store)
    with sql_store.begin() as tx:
        tx.students.add(_student(teacher, "student-1", "sam@example.com"))
        with pytest.raises(ConflictError):
            tx.students.add(_student(teacher, "student-2", "sam@example.com"))
        # the savepoint rolled back; the outer transaction is still usable
        tx.students.add(_student(teacher, "student-3", None))
        tx.students.add(_student(teacher, "student-4", None))

    with sql_store.begin() as tx:
        ids = {s.student_id for s in tx.students.list_by_teacher(teacher.teacher_id)}
    assert ids == {"student-1", "student-3", "student-4"}


def test_duplicate_class_code_conflicts(sql_store: SqlStore) -> None:
    teacher = _seed_class(sql_store)
    clash = Teacher.new(
        school_id=teacher.school_id, name="Other", email="o@x.example", class_code="abc123"
    )
    with pytest.raises(ConflictError), sql_store.begin() as tx:
        tx.classes.add_teacher(clash)


def test_duplicate_certificate_conflicts(sql_store: SqlStore) -> None:
    teacher = _seed_class(sql_store)
    with sql_store.begin() as tx:
        tx.students.add(_student(teacher, "student-1", None))
        tx.certificates.add(
            Certificate.new(
                student_id="student-1", course_id="course-a", title="A", completed_date=T0
            )
        )
        with pytest.raises(ConflictError):
            tx.certificates.add(
                Certificate.new(
                    student_id="student-1", course_id="course-a", title="A", completed_date=T0
                )
            )


def test_claim_orphans_leaves_owned_records_alone(sql_store: SqlStore) -> None:
    teacher = _seed_class(sql_store)
    with sql_store.begin() as tx:
        tx.students.add(_student(teacher, "student-1", None))
        tx.students.add(_student(teacher, "student-2", None))
        tx.devices.save(Device.new(device_id="dev-1", platform="ios", app_version="1", now=T0))
        tx.progress.save_video(_video("dev-1", "1-1"))
        tx.progress.save_video(_video("dev-1", "1-2", student_id="student-1"))
        tx.progress.save_activity(DailyActivityRecord(device_id="dev-1", day=date(2026, 3, 10)))

    with sql_store.begin() as tx:
        claimed = tx.progress.claim_orphan_videos("dev-1", "student-2")
        days = tx.progress.claim_orphan_activity("dev-1", "student-2")

    assert [r.video_id for r in claimed] == ["1-1"]
    assert days == 1
    with sql_store.begin() as tx:
        assert tx.progress.get_video("dev-1", "1-2").student_id == "student-1"
        assert tx.progress.claim_orphan_videos("dev-1", "student-2") == []


def test_exception_rolls_back_the_whole_block(sql_store: SqlStore) -> None:
    with pytest.raises(RuntimeError), sql_store.begin() as tx:
        tx.devices.save(Device.new(device_id="dev-1", platform="ios", app_version="1", now=T0))
        raise RuntimeError("boom")

    with sql_store.begin() as tx:
        assert tx.devices.get("dev-1") is None


def test_lost_database_is_transient(sql_store: SqlStore) -> None:
    with pytest.raises(TransientError), sql_store.begin():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))


def test_ping(sql_store: SqlStore) -> None:
    assert sql_store.ping() is True


# ---- full flows on SQL ----


def test_join_merge_and_certificate_on_sql(sql_engine: ProgressEngine) -> None:
    setup = onboard(sql_engine)
    complete_course(sql_engine, "tablet", "course-ev-charging")
    watch(sql_engine, "phone", "1-1", watched=600.0)

    a = sql_engine.join_class("tablet", CLASS_CODE, "Sam", "Lee", "sam@example.com")
    b = sql_engine.join_class("phone", CLASS_CODE, "Sam", "Lee", "SAM@example.com")
    again = sql_engine.join_class("phone", CLASS_CODE, "Sam", "Lee", "sam@example.com")

    assert a.student_id == b.student_id == again.student_id
    assert a.merged_records == 3
    assert b.merged_records == 2
    assert again.merged_records == 0

    summary = sql_engine.get_student_summary(a.student_id)
    assert summary["videos_completed"] == 3
    assert summary["completed_courses"] == ["course-ev-charging"]

    listing = sql_engine.get_certificates(setup.teacher.teacher_id)
    assert listing.summary.total == 1
    cert = listing.certificates[0].certificate
    approved = sql_engine.review_certificate(cert.cert_id, "approve", setup.teacher.teacher_id)
    assert approved.approved_by == setup.teacher.teacher_id

    roster = sql_engine.get_student_roster(setup.teacher.teacher_id)
    assert roster.summary.total_students == 1
    assert roster.summary.avg_completion_rate == 20


def test_replay_on_sql_is_not_double_counted(
    sql_engine: ProgressEngine, sql_store: SqlStore, clock: FakeClock
) -> None:
    at = clock()
    watch(sql_engine, "dev-1", "1-1", watched=200.0, at=at)
    watch(sql_engine, "dev-1", "1-1", watched=200.0, at=at)
    watch(sql_engine, "dev-1", "1-1", watched=150.0, at=at)

    with sql_store.begin() as tx:
        assert tx.progress.get_video("dev-1", "1-1").watched_sec == 200.0
        assert tx.progress.get_activity("dev-1", clock.today).total_watched_sec == 200.0


def test_duplicate_progress_insert_conflicts(sql_store: SqlStore) -> None:
    with sql_store.begin() as tx:
        tx.devices.add(Device.new(device_id="dev-1", platform="ios", app_version="1", now=T0))
        tx.progress.add_video(_video("dev-1", "1-1"))
        tx.progress.add_activity(DailyActivityRecord(device_id="dev-1", day=date(2026, 3, 10)))

    with sql_store.begin() as tx:
        with pytest.raises(ConflictError):
            tx.devices.add(Device.new(device_id="dev-1", platform="ios", app_version="1", now=T0))
        with pytest.raises(ConflictError):
            tx.progress.add_video(_video("dev-1", "1-1"))
        with pytest.raises(ConflictError):
            tx.progress.add_activity(
                DailyActivityRecord(device_id="dev-1", day=date(2026, 3, 10))
            )
        # the savepoints kept the outer transaction usable
        assert tx.progress.get_video("dev-1", "1-1").watched_sec == 30.0


def test_concurrent_first_write_on_sql_merges(
    sql_engine: ProgressEngine, sql_store: SqlStore, clock: FakeClock
) -> None:
    watch(sql_engine, "dev-1", "1-1", watched=200.0)
    racing = StaleFirstRead(sql_store, "progress", "get_video", "get_activity")
    ingestion = ProgressIngestion(
        racing, sql_engine.cache, sql_engine.certificates, clock=clock
    )

    result = ingestion.update_video_progress("dev-1", "1-1", "", 300.0, 300.0, 600.0)

    assert racing.stale_reads == 0
    assert result.record.watched_sec == 300.0
    with sql_store.begin() as tx:
        assert tx.progress.get_video("dev-1", "1-1").watched_sec == 300.0
        assert tx.progress.get_activity("dev-1", clock.today).total_watched_sec == 300.0
