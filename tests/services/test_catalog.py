from __future__ import annotations

import pytest

from progress_service.services.catalog import (
    DEFAULT_CATALOG,
    Course,
    CourseCatalog,
    normalize_alias,
)


@pytest.mark.parametrize(
    "raw",
    [
        "course-hv-safety",
        "course_1",
        "course-1",
        "1",
        "Course 1",
        "EV Safety Pyramid",
        "High Voltage Safety Foundation",
        "Electrical Safety",
        "High Voltage Vehicle Safety",
        "1.0 High Voltage Vehicle Safety",
        "  ev safety pyramid ",
    ],
)
def test_every_alias_of_course_one_canonicalises(raw: str) -> None:
    assert DEFAULT_CATALOG.canonical_course_id(raw) == "course-hv-safety"


@pytest.mark.parametrize(
    ("raw", "key"),
    [
        ("High Voltage Hazards", "course-electrical-fundamentals"),
        ("course_2", "course-electrical-fundamentals"),
        ("Navigating Electrical Shock Protection", "course-advanced-ev"),
        ("High Voltage PPE", "course-ev-charging"),
        ("Inside an Electric Car", "course-ev-components"),
        ("5", "course-ev-components"),
    ],
)
def test_legacy_titles_of_other_courses(raw: str, key: str) -> None:
    assert DEFAULT_CATALOG.canonical_course_id(raw) == key


def test_normalize_alias_collapses_separators() -> None:
    assert normalize_alias("Course 1") == "course-1"
    assert normalize_alias("course_1") == "course-1"
    assert normalize_alias(" --EV  Safety__Pyramid-- ") == "ev-safety-pyramid"


def test_unknown_alias_is_none() -> None:
    assert DEFAULT_CATALOG.canonical_course_id("underwater basket weaving") is None
    assert DEFAULT_CATALOG.canonical_course_id("") is None
    assert DEFAULT_CATALOG.canonical_course_id(None) is None


# ---- resolve ----


def test_resolve_falls_back_to_the_video_id() -> None:
    assert DEFAULT_CATALOG.resolve("bogus", "2-3") == "course-electrical-fundamentals"
    # pattern match outside the canonical video list still names the course
    assert DEFAULT_CATALOG.resolve("", "4-9") == "course-ev-charging"


def test_resolve_keeps_unknown_ids_verbatim() -> None:
    assert DEFAULT_CATALOG.resolve(" bogus ", "intro") == "bogus"
    assert DEFAULT_CATALOG.resolve(None, "") == "unknown"
    assert DEFAULT_CATALOG.resolve("  ", "9-1") == "unknown"


# ---- catalog shape ----


def test_default_catalog_has_five_courses_with_unique_videos() -> None:
    assert len(DEFAULT_CATALOG) == 5
    videos = [v for c in DEFAULT_CATALOG.courses for v in c.video_ids]
    assert len(videos) == len(set(videos)) == 18


def test_certificate_threshold_defaults_to_all_videos() -> None:
    course = DEFAULT_CATALOG.get("course-hv-safety")
    assert course is not None
    assert course.certificate_threshold == 7
    assert course.certificate_title == "1.0 High Voltage Vehicle Safety Certificate"


def test_conflicting_aliases_are_rejected() -> None:
    with pytest.raises(ValueError, match="maps to both"):
        CourseCatalog(
            courses=(
                Course(key="a", number=1, title="A", video_ids=("1-1",)),
                Course(key="b", number=1, title="B", video_ids=("1-2",)),
            )
        )


def test_touched_courses_ignores_unknown_and_duplicates() -> None:
    touched = DEFAULT_CATALOG.touched_courses(
        ["course-hv-safety", "mystery", "course-hv-safety", "course-ev-charging"]
    )
    assert [c.key for c in touched] == ["course-hv-safety", "course-ev-charging"]
