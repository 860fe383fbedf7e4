"""On-device progress ledger.

The ledger is the device's source of truth while it is offline.  It
applies the shared watch-time rule to every player tick, keeps one
activity bucket per local day, and queues a sync item for every change
so the server can be brought up to date whenever the network is back.

Single writer: one ledger per device installation, mutated sequentially
from the player callback.  The snapshot file is rewritten atomically
after each change; a snapshot that cannot be parsed is discarded and
the ledger starts empty (the server still holds everything that synced).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, date, datetime, tzinfo
from pathlib import Path
from uuid import uuid4

import pydantic
from pydantic import BaseModel, Field

from progress_service.core.clock import Clock, local_day, utc_now
from progress_service.core.errors import DataCorruption, InvalidDuration
from progress_service.models.access import UserTier, should_show_paywall
from progress_service.models.progress import DailyActivityRecord, VideoProgressRecord
from progress_service.services import aggregator
from progress_service.services.aggregator import CertificationTier, Level
from progress_service.services.catalog import DEFAULT_CATALOG, CourseCatalog
from progress_service.services.watch_time import Accumulation, accumulate_watch_time

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
DEFAULT_PAYWALL_XP_THRESHOLD = 50


# ---------------------------------------------------------------------------
# Snapshot schema
# ---------------------------------------------------------------------------


class SyncItem(BaseModel):
    """Latest known state of one video, waiting to be pushed to the server."""

    item_id: str = Field(default_factory=lambda: uuid4().hex)
    video_id: str
    course_id: str
    last_position_sec: float
    watched_sec: float
    total_duration_sec: float
    completed: bool
    updated_at: datetime


class _VideoState(BaseModel):
    video_id: str
    course_id: str
    last_position_sec: float
    watched_sec: float
    duration_sec: float
    completed: bool = False
    completed_at: datetime | None = None
    updated_at: datetime


class _ActivityState(BaseModel):
    day: date
    total_watched_sec: float = 0.0
    videos_completed: int = 0
    videos_started: int = 0
    xp_earned: int = 0


class LedgerSnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    device_id: str
    videos: list[_VideoState] = Field(default_factory=list)
    activity: list[_ActivityState] = Field(default_factory=list)
    pending: list[SyncItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class ProgressLedger:
    def __init__(
        self,
        device_id: str,
        *,
        path: Path | str | None = None,
        clock: Clock = utc_now,
        tz: tzinfo = UTC,
        catalog: CourseCatalog = DEFAULT_CATALOG,
        window_days: int = aggregator.DEFAULT_STREAK_WINDOW_DAYS,
    ) -> None:
        self.device_id = device_id
        self._path = Path(path) if path is not None else None
        self._clock = clock
        self._tz = tz
        self._catalog = catalog
        self._window_days = window_days
        self._videos: dict[str, VideoProgressRecord] = {}
        self._activity: dict[date, DailyActivityRecord] = {}
        self._pending: dict[str, SyncItem] = {}  # video_id -> latest item
        self._closed = False

        if self._path is not None and self._path.exists():
            try:
                self._load(self._path)
            except DataCorruption:
                logger.warning(
                    "Discarding unreadable progress snapshot %s",
                    self._path,
                    exc_info=True,
                    extra={"device_id": device_id},
                )
                self._reset()

    # --- writes ---

    def record_progress(
        self,
        video_id: str,
        course_id: str,
        current_time_sec: float,
        duration_sec: float,
        is_playing: bool = True,
    ) -> VideoProgressRecord | None:
        """Apply one player tick.  Never raises on bad player input."""
        video_id = (video_id or "").strip()
        previous = self._videos.get(video_id)
        if not video_id:
            logger.warning("Ignoring progress without a video id")
            return None

        now = self._clock()
        try:
            acc = accumulate_watch_time(
                previous,
                video_id=video_id,
                course_id=self._catalog.resolve(course_id, video_id),
                device_id=self.device_id,
                current_time_sec=max(current_time_sec, 0.0),
                duration_sec=duration_sec,
                is_playing=is_playing,
                now=now,
            )
        except InvalidDuration as exc:
            logger.warning(
                "Ignoring tick for %s: %s",
                video_id,
                exc,
                extra={"device_id": self.device_id},
            )
            return previous

        self._videos[video_id] = acc.record
        self._record_activity(local_day(now, self._tz), acc)
        self._enqueue(acc.record)
        if acc.just_completed:
            logger.info("Video %s completed", video_id, extra={"device_id": self.device_id})
        self._persist()
        return acc.record

    def mark_synced(self, item_ids: Iterable[str]) -> int:
        """Drop acknowledged items; items superseded since the push stay queued."""
        done = set(item_ids)
        stale = [vid for vid, item in self._pending.items() if item.item_id in done]
        for video_id in stale:
            del self._pending[video_id]
        if stale:
            self._persist()
        return len(stale)

    def close(self) -> None:
        if self._closed:
            return
        self._persist()
        self._closed = True

    # --- reads ---

    def get_progress(self, video_id: str) -> VideoProgressRecord | None:
        return self._videos.get(video_id)

    def videos(self) -> list[VideoProgressRecord]:
        return list(self._videos.values())

    def daily_activity(self) -> list[DailyActivityRecord]:
        return sorted(self._activity.values(), key=lambda r: r.day)

    def pending_sync(self) -> list[SyncItem]:
        return sorted(self._pending.values(), key=lambda i: i.updated_at)

    def today(self) -> date:
        return local_day(self._clock(), self._tz)

    def summary(self) -> aggregator.ProgressSummary:
        return aggregator.summarize(
            self._videos.values(),
            self._activity.values(),
            self.today(),
            catalog=self._catalog,
            window_days=self._window_days,
        )

    def current_streak(self) -> int:
        return aggregator.compute_streak(
            self._activity.values(), self.today(), self._window_days
        )

    def total_xp(self) -> int:
        return self.summary().total_xp

    def level(self) -> Level:
        return self.summary().level

    def certification_tier(self) -> CertificationTier:
        return self.summary().certification_tier

    def is_course_completed(self, course_id: str) -> bool:
        return aggregator.is_course_completed(
            self._videos.values(), course_id, self._catalog
        )

    def today_minutes(self) -> int:
        record = self._activity.get(self.today())
        return int(record.total_watched_sec // 60) if record else 0

    def should_show_paywall(
        self,
        tier: UserTier = UserTier.FREE,
        *,
        has_class_access: bool = False,
        threshold: int = DEFAULT_PAYWALL_XP_THRESHOLD,
    ) -> bool:
        return should_show_paywall(
            self.total_xp(), tier, has_class_access=has_class_access, threshold=threshold
        )

    # --- internals ---

    def _record_activity(self, day: date, acc: Accumulation) -> None:
        delta = max(acc.accepted_delta, 0.0)
        if delta <= 0 and not acc.is_new and not acc.just_completed:
            return
        current = self._activity.get(day) or DailyActivityRecord(
            device_id=self.device_id, day=day
        )
        total = current.total_watched_sec + delta
        self._activity[day] = replace(
            current,
            total_watched_sec=total,
            videos_started=current.videos_started + (1 if acc.is_new else 0),
            videos_completed=current.videos_completed + (1 if acc.just_completed else 0),
            xp_earned=int(total // 10),
        )

    def _enqueue(self, record: VideoProgressRecord) -> None:
        self._pending[record.video_id] = SyncItem(
            video_id=record.video_id,
            course_id=record.course_id,
            last_position_sec=record.last_position_sec,
            watched_sec=record.watched_sec,
            total_duration_sec=record.duration_sec,
            completed=record.completed,
            updated_at=record.updated_at,
        )

    def _reset(self) -> None:
        self._videos.clear()
        self._activity.clear()
        self._pending.clear()

    def _snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            device_id=self.device_id,
            videos=[
                _VideoState(
                    video_id=r.video_id,
                    course_id=r.course_id,
                    last_position_sec=r.last_position_sec,
                    watched_sec=r.watched_sec,
                    duration_sec=r.duration_sec,
                    completed=r.completed,
                    completed_at=r.completed_at,
                    updated_at=r.updated_at,
                )
                for r in self._videos.values()
            ],
            activity=[
                _ActivityState(
                    day=a.day,
                    total_watched_sec=a.total_watched_sec,
                    videos_completed=a.videos_completed,
                    videos_started=a.videos_started,
                    xp_earned=a.xp_earned,
                )
                for a in self._activity.values()
            ],
            pending=list(self._pending.values()),
        )

    def _persist(self) -> None:
        if self._path is None or self._closed:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(self._snapshot().model_dump_json(), encoding="utf-8")
        os.replace(tmp, self._path)

    def _load(self, path: Path) -> None:
        try:
            snapshot = LedgerSnapshot.model_validate_json(path.read_bytes())
        except pydantic.ValidationError as exc:
            raise DataCorruption(f"unreadable snapshot {path}") from exc
        if snapshot.device_id != self.device_id:
            raise DataCorruption(
                f"snapshot belongs to device {snapshot.device_id!r}, not {self.device_id!r}"
            )

        for v in snapshot.videos:
            self._videos[v.video_id] = VideoProgressRecord(
                video_id=v.video_id,
                course_id=v.course_id,
                device_id=self.device_id,
                last_position_sec=v.last_position_sec,
                watched_sec=v.watched_sec,
                duration_sec=v.duration_sec,
                completed=v.completed,
                completed_at=v.completed_at,
                updated_at=v.updated_at,
            )
        for a in snapshot.activity:
            self._activity[a.day] = DailyActivityRecord(
                device_id=self.device_id,
                day=a.day,
                total_watched_sec=a.total_watched_sec,
                videos_completed=a.videos_completed,
                videos_started=a.videos_started,
                xp_earned=a.xp_earned,
            )
        for item in snapshot.pending:
            self._pending[item.video_id] = item
