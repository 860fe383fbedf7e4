"""Read-back of what the server holds for a single device.

An app reinstalled under the same device id starts from an empty
ledger; it can pull its stored records, and the derived state they
imply, without having joined a class.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, tzinfo

from progress_service.core.clock import Clock, local_day, utc_now
from progress_service.core.errors import NotFoundError
from progress_service.models.device import Device
from progress_service.models.progress import CourseCompletionState, VideoProgressRecord
from progress_service.repos.unit_of_work import Store
from progress_service.services import aggregator
from progress_service.services.aggregator import ProgressSummary
from progress_service.services.catalog import DEFAULT_CATALOG, CourseCatalog


@dataclass(frozen=True, slots=True)
class DeviceProgress:
    device: Device
    videos: list[VideoProgressRecord]
    summary: ProgressSummary
    course: CourseCompletionState | None = None


class DeviceProgressView:
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

    def get_device_progress(
        self, device_id: str, course_id: str | None = None
    ) -> DeviceProgress:
        """Records and derived state for one device.

        The summary always covers every record the device produced.  With
        ``course_id`` (any accepted alias) the listed videos are narrowed
        to that course and its completion state is returned alongside.
        """
        course_key = None
        if course_id:
            course_key = self._catalog.canonical_course_id(course_id)
            if course_key is None:
                raise NotFoundError("Course not found")

        with self._store.begin() as tx:
            device = tx.devices.get((device_id or "").strip())
            if device is None:
                raise NotFoundError("Device not found")
            videos = tx.progress.list_videos_by_device(device.device_id)
            activity = tx.progress.list_activity_by_device(device.device_id)

        summary = aggregator.summarize(
            videos,
            activity,
            local_day(self._clock(), self._tz),
            catalog=self._catalog,
            window_days=self._window_days,
            student_id=device.student_id,
        )
        course = None
        if course_key is not None:
            videos = [
                v
                for v in videos
                if self._catalog.resolve(v.course_id, v.video_id) == course_key
            ]
            course = next(s for s in summary.courses if s.course_id == course_key)

        videos.sort(key=lambda v: v.updated_at, reverse=True)
        return DeviceProgress(device=device, videos=videos, summary=summary, course=course)
