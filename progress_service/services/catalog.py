"""Course catalog and course-id canonicalisation.

Clients have reported the same course under several ids over time:

  "course_1", "course-1", "1", "Course 1"     : numeric forms
  "EV Safety Pyramid", "High Voltage Safety Foundation", ...
                                              : legacy titles
  "course-hv-safety"                          : backend slug

Every ingestion boundary passes the reported id through
``CourseCatalog.resolve()`` so that storage, completion checks and
certificates only ever see the canonical key (the backend slug).  An id
that matches no alias falls back to the ``N-M`` video-id pattern
("1-3" is module 3 of course 1); if that fails too the trimmed raw id is
kept so progress on content outside the catalog is still recorded, it
just never counts towards a course or a certificate.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

_SEPARATORS = re.compile(r"[\s_\-]+")
_BASIC_VIDEO_ID = re.compile(r"^(\d+)-(\d+)$")


def normalize_alias(raw: str) -> str:
    return _SEPARATORS.sub("-", raw.strip().lower()).strip("-")


@dataclass(frozen=True, slots=True)
class Course:
    key: str
    number: int
    title: str
    video_ids: tuple[str, ...]
    legacy_titles: tuple[str, ...] = ()
    min_videos_for_certificate: int | None = None

    @property
    def certificate_title(self) -> str:
        return f"{self.title} Certificate"

    @property
    def certificate_threshold(self) -> int:
        if self.min_videos_for_certificate is None:
            return len(self.video_ids)
        return self.min_videos_for_certificate

    def aliases(self) -> set[str]:
        n = self.number
        raw = {
            self.key,
            self.title,
            str(n),
            f"course_{n}",
            f"course-{n}",
            f"Course {n}",
            *self.legacy_titles,
        }
        return {normalize_alias(a) for a in raw}


@dataclass(frozen=True)
class CourseCatalog:
    courses: tuple[Course, ...]
    _by_alias: dict[str, str] = field(init=False, repr=False)
    _by_key: dict[str, Course] = field(init=False, repr=False)
    _by_video: dict[str, str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        by_alias: dict[str, str] = {}
        by_video: dict[str, str] = {}
        for course in self.courses:
            for alias in course.aliases():
                owner = by_alias.setdefault(alias, course.key)
                if owner != course.key:
                    raise ValueError(
                        f"alias {alias!r} maps to both {owner!r} and {course.key!r}"
                    )
            for video_id in course.video_ids:
                by_video[video_id] = course.key
        object.__setattr__(self, "_by_alias", by_alias)
        object.__setattr__(self, "_by_key", {c.key: c for c in self.courses})
        object.__setattr__(self, "_by_video", by_video)

    def __len__(self) -> int:
        return len(self.courses)

    def canonical_course_id(self, raw: str | None) -> str | None:
        """Map any accepted alias to its canonical key, or None if unknown."""
        if not raw:
            return None
        return self._by_alias.get(normalize_alias(raw))

    def course_for_video(self, video_id: str) -> str | None:
        video_id = video_id.strip()
        if video_id in self._by_video:
            return self._by_video[video_id]
        match = _BASIC_VIDEO_ID.match(video_id)
        if match is None:
            return None
        return self.canonical_course_id(match.group(1))

    def resolve(self, raw_course_id: str | None, video_id: str = "") -> str:
        """Canonical key for an ingested record; never fails."""
        canonical = self.canonical_course_id(raw_course_id)
        if canonical is not None:
            return canonical
        from_video = self.course_for_video(video_id) if video_id else None
        if from_video is not None:
            return from_video
        cleaned = (raw_course_id or "").strip()
        return cleaned or "unknown"

    def get(self, course_key: str) -> Course | None:
        return self._by_key.get(course_key)

    def keys(self) -> list[str]:
        return [c.key for c in self.courses]

    def touched_courses(self, course_ids: Iterable[str]) -> list[Course]:
        seen: dict[str, Course] = {}
        for course_id in course_ids:
            course = self.get(course_id)
            if course is not None:
                seen.setdefault(course.key, course)
        return list(seen.values())


def _videos(course_number: int, count: int) -> tuple[str, ...]:
    return tuple(f"{course_number}-{i}" for i in range(1, count + 1))


DEFAULT_CATALOG = CourseCatalog(
    courses=(
        Course(
            key="course-hv-safety",
            number=1,
            title="1.0 High Voltage Vehicle Safety",
            video_ids=_videos(1, 7),
            legacy_titles=(
                "High Voltage Safety Foundation",
                "EV Safety Pyramid",
                "Electrical Safety",
                "High Voltage Vehicle Safety",
            ),
        ),
        Course(
            key="course-electrical-fundamentals",
            number=2,
            title="2.0 Electrical Level 1 - Medium Heavy Duty",
            video_ids=_videos(2, 4),
            legacy_titles=("Electrical Fundamentals", "High Voltage Hazards"),
        ),
        Course(
            key="course-advanced-ev",
            number=3,
            title="3.0 Electrical Level 2 - Medium Heavy Duty",
            video_ids=_videos(3, 2),
            legacy_titles=(
                "Advanced Electrical Diagnostics",
                "Navigating Electrical Shock Protection",
            ),
        ),
        Course(
            key="course-ev-charging",
            number=4,
            title="4.0 Electric Vehicle Supply Equipment",
            video_ids=_videos(4, 2),
            legacy_titles=("EV Charging Systems", "High Voltage PPE"),
        ),
        Course(
            key="course-ev-components",
            number=5,
            title="5.0 Introduction to Electric Vehicles",
            video_ids=_videos(5, 3),
            legacy_titles=("Advanced EV Systems", "Inside an Electric Car"),
        ),
    )
)
