"""Derived progress state: streak, XP, level, certification tier.

Everything here is a pure function of stored raw facts
(VideoProgressRecord + DailyActivityRecord).  Nothing is written back;
callers recompute on every read and may cache the result only as long
as no new fact has been written for the student.

The same functions serve the on-device ledger (records of one device)
and the server (records of every device bound to a student).  Records
for the same video coming from different devices are folded first, so
a student who finished a video on a tablet and half-watched it on a
phone is credited once, as completed.

These functions must not fail at read time: bad durations count as zero
progress and unknown course ids simply never complete a course.
"""

from __future__ import annotations

import enum
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from progress_service.models.progress import (
    CourseCompletionState,
    DailyActivityRecord,
    VideoProgressRecord,
)
from progress_service.services.catalog import DEFAULT_CATALOG, CourseCatalog

DEFAULT_STREAK_WINDOW_DAYS = 30
COMPLETED_VIDEO_XP = 50
PARTIAL_MIN_WATCHED_SEC = 60.0
PARTIAL_XP_MIN = 10
PARTIAL_XP_MAX = 40
STREAK_DAY_XP = 10

# Lower XP bound of levels 1..9; beyond level 9 every 1000 XP is a level.
_LEVEL_FLOORS = (0, 100, 250, 500, 800, 1200, 1700, 2300, 3000)
_XP_PER_LEVEL_AFTER_TABLE = 1000
_LEVEL_TITLES = (
    "EV Apprentice",
    "Tech Trainee",
    "Junior Technician",
    "EV Technician",
    "Senior Tech",
    "EV Specialist",
    "Master Tech",
    "EV Expert",
    "EV Master",
)


class CertificationTier(str, enum.Enum):
    NONE = "none"
    FOUNDATION = "foundation"
    ASSOCIATE = "associate"
    PROFESSIONAL = "professional"
    CERTIFIED = "certified"

    @property
    def display_name(self) -> str:
        return {
            CertificationTier.NONE: "Student",
            CertificationTier.FOUNDATION: "EV Foundation Certified",
            CertificationTier.ASSOCIATE: "EV Associate Technician",
            CertificationTier.PROFESSIONAL: "EV Professional Technician",
            CertificationTier.CERTIFIED: "EV Certified Master",
        }[self]

    @property
    def courses_required(self) -> int:
        return {
            CertificationTier.NONE: 0,
            CertificationTier.FOUNDATION: 1,
            CertificationTier.ASSOCIATE: 2,
            CertificationTier.PROFESSIONAL: 4,
            CertificationTier.CERTIFIED: 5,
        }[self]


@dataclass(frozen=True, slots=True)
class Level:
    number: int
    title: str
    floor_xp: int
    next_level_xp: int

    def progress(self, total_xp: int) -> tuple[int, int, float]:
        """(xp into this level, xp this level spans, fraction capped at 1.0)."""
        current = max(total_xp - self.floor_xp, 0)
        needed = self.next_level_xp - self.floor_xp
        return current, needed, min(current / needed, 1.0)


@dataclass(frozen=True, slots=True)
class VideoFact:
    """One video's progress for a learner after folding every device's record."""

    course_id: str
    video_id: str
    watched_sec: float
    duration_sec: float
    completed: bool

    @property
    def watch_fraction(self) -> float:
        if self.duration_sec <= 0:
            return 0.0
        return min(max(self.watched_sec / self.duration_sec, 0.0), 1.0)


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    total_xp: int
    streak: int
    level: Level
    certification_tier: CertificationTier
    completed_courses: tuple[str, ...]
    courses: tuple[CourseCompletionState, ...]
    videos_completed: int
    total_watched_sec: float

    @property
    def level_progress(self) -> tuple[int, int, float]:
        return self.level.progress(self.total_xp)


# ---------------------------------------------------------------------------
# Folding
# ---------------------------------------------------------------------------


def fold_video_progress(
    records: Iterable[VideoProgressRecord],
    catalog: CourseCatalog = DEFAULT_CATALOG,
) -> list[VideoFact]:
    folded: dict[tuple[str, str], VideoFact] = {}
    for record in records:
        course_id = catalog.resolve(record.course_id, record.video_id)
        key = (course_id, record.video_id)
        prev = folded.get(key)
        if prev is None:
            folded[key] = VideoFact(
                course_id=course_id,
                video_id=record.video_id,
                watched_sec=max(record.watched_sec, 0.0),
                duration_sec=max(record.duration_sec, 0.0),
                completed=record.completed,
            )
        else:
            folded[key] = VideoFact(
                course_id=course_id,
                video_id=record.video_id,
                watched_sec=max(prev.watched_sec, record.watched_sec),
                duration_sec=max(prev.duration_sec, record.duration_sec),
                completed=prev.completed or record.completed,
            )
    return list(folded.values())


def activity_by_day(activity: Iterable[DailyActivityRecord]) -> dict[date, float]:
    totals: dict[date, float] = defaultdict(float)
    for record in activity:
        totals[record.day] += max(record.total_watched_sec, 0.0)
    return dict(totals)


# ---------------------------------------------------------------------------
# Streak, XP, level, tier
# ---------------------------------------------------------------------------


def compute_streak(
    activity: Iterable[DailyActivityRecord],
    today: date,
    window_days: int = DEFAULT_STREAK_WINDOW_DAYS,
) -> int:
    """Consecutive active days ending today (or yesterday, if today is still empty)."""
    seconds_by_day = activity_by_day(activity)
    streak = 0
    for offset in range(window_days):
        day = today - timedelta(days=offset)
        if seconds_by_day.get(day, 0.0) > 0:
            streak += 1
        elif streak > 0:
            break
        elif day == today:
            # today just started; keep looking at yesterday
            continue
        else:
            break
    return streak


def video_xp(fact: VideoFact) -> int:
    if fact.completed:
        return COMPLETED_VIDEO_XP
    if fact.watched_sec > PARTIAL_MIN_WATCHED_SEC:
        scaled = int(fact.watch_fraction * PARTIAL_XP_MAX)
        return max(PARTIAL_XP_MIN, min(scaled, PARTIAL_XP_MAX))
    return 0


def compute_total_xp(facts: Iterable[VideoFact], streak: int) -> int:
    return sum(video_xp(f) for f in facts) + STREAK_DAY_XP * max(streak, 0)


def level_for_xp(total_xp: int) -> Level:
    xp = max(total_xp, 0)
    last_floor = _LEVEL_FLOORS[-1]
    if xp >= last_floor:
        extra = (xp - last_floor) // _XP_PER_LEVEL_AFTER_TABLE
        number = len(_LEVEL_FLOORS) + extra
        floor_xp = last_floor + extra * _XP_PER_LEVEL_AFTER_TABLE
        return Level(
            number=number,
            title=_LEVEL_TITLES[-1],
            floor_xp=floor_xp,
            next_level_xp=floor_xp + _XP_PER_LEVEL_AFTER_TABLE,
        )

    index = max(i for i, floor_xp in enumerate(_LEVEL_FLOORS) if xp >= floor_xp)
    return Level(
        number=index + 1,
        title=_LEVEL_TITLES[index],
        floor_xp=_LEVEL_FLOORS[index],
        next_level_xp=_LEVEL_FLOORS[index + 1],
    )


def certification_tier(completed_course_count: int) -> CertificationTier:
    if completed_course_count >= 5:
        return CertificationTier.CERTIFIED
    if completed_course_count >= 4:
        return CertificationTier.PROFESSIONAL
    if completed_course_count >= 2:
        return CertificationTier.ASSOCIATE
    if completed_course_count >= 1:
        return CertificationTier.FOUNDATION
    return CertificationTier.NONE


# ---------------------------------------------------------------------------
# Course completion
# ---------------------------------------------------------------------------


def course_completion(
    facts: Iterable[VideoFact],
    catalog: CourseCatalog = DEFAULT_CATALOG,
    student_id: str | None = None,
) -> list[CourseCompletionState]:
    completed_by_course: dict[str, set[str]] = defaultdict(set)
    for fact in facts:
        if fact.completed:
            completed_by_course[fact.course_id].add(fact.video_id)

    states = []
    for course in catalog.courses:
        done = completed_by_course.get(course.key, set())
        states.append(
            CourseCompletionState(
                course_id=course.key,
                student_id=student_id,
                completed_videos=len(done & set(course.video_ids)),
                total_videos_required=len(course.video_ids),
            )
        )
    return states


def completed_video_count(
    facts: Iterable[VideoFact], course_id: str, catalog: CourseCatalog = DEFAULT_CATALOG
) -> int:
    """Completed videos of the course's canonical set (used for certificate thresholds)."""
    course = catalog.get(course_id)
    if course is None:
        return 0
    canonical = set(course.video_ids)
    return len(
        {f.video_id for f in facts if f.completed and f.course_id == course.key}
        & canonical
    )


def is_course_completed(
    records: Iterable[VideoProgressRecord],
    course_id: str,
    catalog: CourseCatalog = DEFAULT_CATALOG,
) -> bool:
    canonical = catalog.canonical_course_id(course_id)
    if canonical is None:
        return False
    facts = fold_video_progress(records, catalog)
    return any(
        s.course_id == canonical and s.is_completed
        for s in course_completion(facts, catalog)
    )


def summarize(
    records: Iterable[VideoProgressRecord],
    activity: Iterable[DailyActivityRecord],
    today: date,
    *,
    catalog: CourseCatalog = DEFAULT_CATALOG,
    window_days: int = DEFAULT_STREAK_WINDOW_DAYS,
    student_id: str | None = None,
) -> ProgressSummary:
    facts = fold_video_progress(records, catalog)
    streak = compute_streak(activity, today, window_days)
    total_xp = compute_total_xp(facts, streak)
    courses = course_completion(facts, catalog, student_id)
    completed = tuple(s.course_id for s in courses if s.is_completed)
    return ProgressSummary(
        total_xp=total_xp,
        streak=streak,
        level=level_for_xp(total_xp),
        certification_tier=certification_tier(len(completed)),
        completed_courses=completed,
        courses=tuple(courses),
        videos_completed=sum(1 for f in facts if f.completed),
        total_watched_sec=sum(f.watched_sec for f in facts),
    )
