from __future__ import annotations

import pytest

from progress_service.core.errors import ConflictError, NotFoundError, ValidationError
from progress_service.services.aggregator import CertificationTier
from progress_service.services.engine import ProgressEngine
from progress_service.services.roster import format_last_active
from tests.conftest import CLASS_CODE, FakeClock, complete_course, onboard, watch


@pytest.mark.parametrize(
    ("days", "label"),
    [
        (0.0, "Just now"),
        (0.01, "Just now"),
        (0.03, "Few minutes ago"),
        (0.05, "1 hours ago"),
        (0.5, "12 hours ago"),
        (1.5, "Yesterday"),
        (3.2, "3 days ago"),
        (14.0, "2 weeks ago"),
        (65.0, "2 months ago"),
    ],
)
def test_format_last_active(days: float, label: str) -> None:
    assert format_last_active(days) == label


# ---- onboarding ----


def test_onboard_normalises_code_and_email(engine: ProgressEngine) -> None:
    setup = onboard(engine, class_code=" evt202 ")
    assert setup.teacher.class_code == "EVT202"
    assert setup.teacher.email == "dana.reyes@lincoln.example"
    assert setup.teacher.school_id == setup.school.school_id
    assert setup.school.district == "North"


def test_onboard_rejects_duplicate_class_code(engine: ProgressEngine) -> None:
    onboard(engine)
    with pytest.raises(ConflictError):
        onboard(engine, class_code=CLASS_CODE.lower())


def test_onboard_requires_every_field(engine: ProgressEngine) -> None:
    with pytest.raises(ValidationError, match="teacher_email"):
        engine.onboard_school("Lincoln Tech", "EV", "Dana", "  ", CLASS_CODE)


# ---- roster ----


def test_roster_of_unknown_teacher(engine: ProgressEngine) -> None:
    with pytest.raises(NotFoundError, match="Teacher not found"):
        engine.get_student_roster("teacher-missing")


def test_empty_roster(engine: ProgressEngine) -> None:
    setup = onboard(engine)
    roster = engine.get_student_roster(setup.teacher.teacher_id)
    assert roster.students == []
    assert roster.summary.total_students == 0
    assert roster.summary.avg_xp == 0
    assert roster.summary.avg_completion_rate == 0


def test_roster_entries_and_summary(engine: ProgressEngine, clock: FakeClock) -> None:
    setup = onboard(engine)
    teacher_id = setup.teacher.teacher_id

    idle = engine.join_class("dev-idle", CLASS_CODE, "Ira", "Idle")
    clock.advance(days=10)

    busy = engine.join_class("dev-busy", CLASS_CODE, "Bea", "Busy", "bea@example.com")
    complete_course(engine, "dev-busy", "course-hv-safety")
    cert = engine.get_certificates(teacher_id).certificates[0].certificate
    engine.review_certificate(cert.cert_id, "approve", teacher_id)

    roster = engine.get_student_roster(teacher_id)
    assert [s.student_id for s in roster.students] == [busy.student_id, idle.student_id]

    top, bottom = roster.students
    assert top.name == "Bea Busy"
    assert top.email == "bea@example.com"
    assert top.total_xp == 7 * 50 + 10
    assert top.current_level == 3
    assert top.level_title == "Junior Technician"
    assert top.completed_courses == 1
    assert top.certification_tier is CertificationTier.FOUNDATION
    assert top.streak == 1
    assert top.last_active == "Just now"
    assert top.is_active is True
    assert top.needs_attention is False

    assert bottom.total_xp == 0
    assert bottom.last_active == "1 weeks ago"
    assert bottom.is_active is False
    assert bottom.needs_attention is True

    summary = roster.summary
    assert summary.total_students == 2
    assert summary.active_today == 1
    assert summary.avg_xp == (7 * 50 + 10) // 2
    # one approved certificate out of 2 students x 5 courses
    assert summary.avg_completion_rate == 10


def test_low_xp_student_needs_attention_even_when_active(engine: ProgressEngine) -> None:
    setup = onboard(engine)
    engine.join_class("dev-1", CLASS_CODE, "Sam", "Lee")
    watch(engine, "dev-1", "1-1", watched=120.0)

    entry = engine.get_student_roster(setup.teacher.teacher_id).students[0]
    assert entry.is_active is True
    assert entry.needs_attention is True


# ---- student detail ----


def test_student_detail(engine: ProgressEngine) -> None:
    setup = onboard(engine)
    engine.register_device("dev-1", "ios", "2.3.0", "Sam's iPad")
    joined = engine.join_class("dev-1", CLASS_CODE, "Sam", "Lee")
    complete_course(engine, "dev-1", "course-ev-charging")
    watch(engine, "dev-1", "1-1", watched=600.0)

    detail = engine.get_student_detail(setup.teacher.teacher_id, joined.student_id)

    assert detail.student.display_name == "Sam Lee"
    assert [(d.device_id, d.platform, d.device_name) for d in detail.devices] == [
        ("dev-1", "ios", "Sam's iPad")
    ]
    by_course = {c.course_id: c for c in detail.courses}
    assert by_course["course-ev-charging"].percentage == 100
    assert by_course["course-hv-safety"].completed_videos == 1
    assert by_course["course-hv-safety"].percentage == 14
    assert by_course["course-hv-safety"].title == "1.0 High Voltage Vehicle Safety"
    assert [c.course_id for c in detail.certificates] == ["course-ev-charging"]


def test_student_detail_hidden_from_other_teachers(engine: ProgressEngine) -> None:
    onboard(engine)
    other = onboard(engine, class_code="OTHER9")
    joined = engine.join_class("dev-1", CLASS_CODE, "Sam", "Lee")

    with pytest.raises(NotFoundError, match="Student not found"):
        engine.get_student_detail(other.teacher.teacher_id, joined.student_id)
    with pytest.raises(NotFoundError):
        engine.get_student_detail(other.teacher.teacher_id, "student-missing")
