"""Raw progress facts: per-video records and per-day activity buckets.

Both are keyed by device, not by student.  A record only learns its
``student_id`` when the device is bound; the ``claim_orphan_*`` methods
perform that one-time re-tagging and never touch a record that already
belongs to someone.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Protocol

from progress_service.core.errors import ConflictError
from progress_service.models.progress import DailyActivityRecord, VideoProgressRecord


class ProgressRepo(Protocol):
    def get_video(
        self, device_id: str, video_id: str, *, for_update: bool = False
    ) -> VideoProgressRecord | None: ...
    def add_video(self, record: VideoProgressRecord) -> None: ...
    def save_video(self, record: VideoProgressRecord) -> None: ...
    def list_videos_by_device(self, device_id: str) -> list[VideoProgressRecord]: ...
    def list_videos_by_student(self, student_id: str) -> list[VideoProgressRecord]: ...
    def get_activity(
        self, device_id: str, day: date, *, for_update: bool = False
    ) -> DailyActivityRecord | None: ...
    def add_activity(self, record: DailyActivityRecord) -> None: ...
    def save_activity(self, record: DailyActivityRecord) -> None: ...
    def list_activity_by_device(self, device_id: str) -> list[DailyActivityRecord]: ...
    def list_activity_by_student(self, student_id: str) -> list[DailyActivityRecord]: ...
    def claim_orphan_videos(
        self, device_id: str, student_id: str
    ) -> list[VideoProgressRecord]: ...
    def claim_orphan_activity(self, device_id: str, student_id: str) -> int: ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._videos: dict[tuple[str, str], VideoProgressRecord] = {}
        self._activity: dict[tuple[str, date], DailyActivityRecord] = {}

    def get_video(
        self, device_id: str, video_id: str, *, for_update: bool = False
    ) -> VideoProgressRecord | None:
        return self._videos.get((device_id, video_id))

    def add_video(self, record: VideoProgressRecord) -> None:
        if record.key in self._videos:
            raise ConflictError(f"progress {record.key} already exists")
        self._videos[record.key] = record

    def save_video(self, record: VideoProgressRecord) -> None:
        self._videos[record.key] = record

    def list_videos_by_device(self, device_id: str) -> list[VideoProgressRecord]:
        return [r for r in self._videos.values() if r.device_id == device_id]

    def list_videos_by_student(self, student_id: str) -> list[VideoProgressRecord]:
        return [r for r in self._videos.values() if r.student_id == student_id]

    def get_activity(
        self, device_id: str, day: date, *, for_update: bool = False
    ) -> DailyActivityRecord | None:
        return self._activity.get((device_id, day))

    def add_activity(self, record: DailyActivityRecord) -> None:
        if record.key in self._activity:
            raise ConflictError(f"activity {record.key} already exists")
        self._activity[record.key] = record

    def save_activity(self, record: DailyActivityRecord) -> None:
        self._activity[record.key] = record

    def list_activity_by_device(self, device_id: str) -> list[DailyActivityRecord]:
        return [r for r in self._activity.values() if r.device_id == device_id]

    def list_activity_by_student(self, student_id: str) -> list[DailyActivityRecord]:
        return [r for r in self._activity.values() if r.student_id == student_id]

    def claim_orphan_videos(
        self, device_id: str, student_id: str
    ) -> list[VideoProgressRecord]:
        claimed = []
        for key, record in list(self._videos.items()):
            if record.device_id == device_id and record.student_id is None:
                updated = replace(record, student_id=student_id)
                self._videos[key] = updated
                claimed.append(updated)
        return claimed

    def claim_orphan_activity(self, device_id: str, student_id: str) -> int:
        count = 0
        for key, record in list(self._activity.items()):
            if record.device_id == device_id and record.student_id is None:
                self._activity[key] = replace(record, student_id=student_id)
                count += 1
        return count
