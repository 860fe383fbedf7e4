from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True, slots=True)
class VideoProgressRecord:
    """Raw watch facts for one (device_id, video_id) pair; the source of truth.

    ``duration_sec`` is the longest clip length reported so far;
    ``watched_sec`` never exceeds it and never decreases.
    """

    video_id: str
    course_id: str
    device_id: str
    last_position_sec: float
    watched_sec: float
    duration_sec: float
    updated_at: datetime
    completed: bool = False
    completed_at: datetime | None = None
    student_id: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.device_id, self.video_id)

    @property
    def watch_fraction(self) -> float:
        if self.duration_sec <= 0:
            return 0.0
        return min(self.watched_sec / self.duration_sec, 1.0)

    @property
    def progress_percentage(self) -> int:
        return int(self.watch_fraction * 100)

    @property
    def is_orphaned(self) -> bool:
        return self.student_id is None


@dataclass(frozen=True, slots=True)
class DailyActivityRecord:
    """Per-device activity bucket for one local calendar day."""

    device_id: str
    day: date
    total_watched_sec: float = 0.0
    videos_completed: int = 0
    videos_started: int = 0
    xp_earned: int = 0
    student_id: str | None = None

    @property
    def key(self) -> tuple[str, date]:
        return (self.device_id, self.day)

    @property
    def is_orphaned(self) -> bool:
        return self.student_id is None


@dataclass(frozen=True, slots=True)
class CourseCompletionState:
    """Derived; never stored."""

    course_id: str
    student_id: str | None
    completed_videos: int
    total_videos_required: int

    @property
    def is_completed(self) -> bool:
        return (
            self.total_videos_required > 0
            and self.completed_videos >= self.total_videos_required
        )
