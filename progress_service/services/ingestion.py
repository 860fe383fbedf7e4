"""Server-side progress ingestion.

Devices push the state their ledger computed; the server re-applies the
per-record invariants against what it has *stored* rather than trusting
the report.  A replayed, duplicated or out-of-order push therefore never
lowers watched time and never adds the same seconds to daily activity
twice: only the positive difference against the stored record counts.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, tzinfo

from progress_service.core.clock import Clock, local_day, utc_now
from progress_service.core.errors import ConflictError, ValidationError
from progress_service.core.metrics import PROGRESS_UPDATES
from progress_service.models.certificate import Certificate
from progress_service.models.device import Device
from progress_service.models.progress import DailyActivityRecord, VideoProgressRecord
from progress_service.repos.unit_of_work import Repos, Store
from progress_service.services.cache import CacheService, summary_key
from progress_service.services.catalog import DEFAULT_CATALOG, CourseCatalog
from progress_service.services.certificates import CertificateWorkflow
from progress_service.services.devices import ensure_device
from progress_service.services.watch_time import Accumulation, merge_reported_progress

logger = logging.getLogger(__name__)

SECONDS_PER_ACTIVITY_XP = 10


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """One reported progress state, as carried by a sync batch."""

    video_id: str
    course_id: str
    last_position_sec: float
    watched_sec: float
    total_duration_sec: float
    completed_hint: bool = False
    client_updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ProgressUpdateResult:
    record: VideoProgressRecord
    accepted_delta: float
    just_completed: bool
    certificate: Certificate | None = None

    @property
    def progress_percentage(self) -> int:
        return self.record.progress_percentage

    @property
    def completed(self) -> bool:
        return self.record.completed


@dataclass(frozen=True, slots=True)
class BatchItemResult:
    index: int
    video_id: str
    result: ProgressUpdateResult | None = None
    error: str | None = None

    @property
    def accepted(self) -> bool:
        return self.result is not None


class ProgressIngestion:
    def __init__(
        self,
        store: Store,
        cache: CacheService,
        certificates: CertificateWorkflow,
        *,
        tz: tzinfo = UTC,
        catalog: CourseCatalog = DEFAULT_CATALOG,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._certificates = certificates
        self._tz = tz
        self._catalog = catalog
        self._clock = clock

    def update_video_progress(
        self,
        device_id: str,
        video_id: str,
        course_id: str,
        last_position_sec: float,
        watched_sec: float,
        total_duration_sec: float,
        completed_hint: bool = False,
        client_updated_at: datetime | None = None,
        activity_day: date | None = None,
    ) -> ProgressUpdateResult:
        device_id = (device_id or "").strip()
        video_id = (video_id or "").strip()
        try:
            if not device_id:
                raise ValidationError("device_id is required")
            if not video_id:
                raise ValidationError("video_id is required")
            if not (math.isfinite(last_position_sec) and math.isfinite(watched_sec)):
                raise ValidationError("positions must be finite numbers")
            args = (
                device_id,
                video_id,
                course_id,
                last_position_sec,
                watched_sec,
                total_duration_sec,
                completed_hint,
                client_updated_at,
                activity_day,
            )
            try:
                return self._apply(*args)
            except ConflictError:
                # a concurrent first write for the same key won; merge onto it
                logger.info(
                    "Concurrent progress write for %s/%s; retrying",
                    device_id,
                    video_id,
                    extra={"device_id": device_id},
                )
                return self._apply(*args)
        except ValidationError as exc:
            PROGRESS_UPDATES.labels(result="rejected").inc()
            logger.warning(
                "Rejected progress for %s/%s: %s",
                device_id or "-",
                video_id or "-",
                exc,
                extra={"device_id": device_id},
            )
            raise

    def sync_batch(
        self, device_id: str, items: Iterable[ProgressUpdate]
    ) -> list[BatchItemResult]:
        """Apply every item in order; a rejected item never aborts the batch."""
        results = []
        for index, item in enumerate(items):
            try:
                result = self.update_video_progress(
                    device_id,
                    item.video_id,
                    item.course_id,
                    item.last_position_sec,
                    item.watched_sec,
                    item.total_duration_sec,
                    completed_hint=item.completed_hint,
                    client_updated_at=item.client_updated_at,
                )
            except ValidationError as exc:
                results.append(
                    BatchItemResult(index=index, video_id=item.video_id, error=str(exc))
                )
            else:
                results.append(
                    BatchItemResult(index=index, video_id=item.video_id, result=result)
                )
        return results

    def _apply(
        self,
        device_id: str,
        video_id: str,
        raw_course_id: str,
        last_position_sec: float,
        watched_sec: float,
        total_duration_sec: float,
        completed_hint: bool,
        client_updated_at: datetime | None,
        activity_day: date | None,
    ) -> ProgressUpdateResult:
        now = self._clock()
        reported_at = _aware(client_updated_at) if client_updated_at else now
        course_id = self._catalog.resolve(raw_course_id, video_id)
        certificate = None

        with self._store.begin() as tx:
            device = ensure_device(tx, device_id, now)
            stored = tx.progress.get_video(device_id, video_id, for_update=True)
            # raises InvalidDuration; the unit of work then rolls back
            acc = merge_reported_progress(
                stored,
                video_id=video_id,
                course_id=course_id,
                device_id=device_id,
                student_id=device.student_id,
                last_position_sec=max(last_position_sec, 0.0),
                watched_sec=watched_sec,
                duration_sec=total_duration_sec,
                completed_hint=completed_hint,
                reported_at=reported_at,
            )
            record = acc.record
            if acc.is_new:
                tx.progress.add_video(record)
            else:
                tx.progress.save_video(record)

            day = activity_day or local_day(reported_at, self._tz)
            self._record_activity(tx, device, day, acc)
            self._touch(tx, device, now)

            if device.student_id is not None and record.completed:
                certificate = self._certificates.check_and_issue_in(
                    tx, device.student_id, course_id, now
                )

        if device.student_id is not None:
            self._cache.delete(summary_key(device.student_id))

        PROGRESS_UPDATES.labels(
            result="completed" if acc.just_completed else "accepted"
        ).inc()
        logger.debug(
            "Progress %s/%s watched=%.1f (+%.1f)",
            device_id,
            video_id,
            record.watched_sec,
            acc.accepted_delta,
            extra={"device_id": device_id},
        )
        if acc.just_completed:
            logger.info(
                "Video %s completed on %s",
                video_id,
                device_id,
                extra={"device_id": device_id, "student_id": device.student_id},
            )
        return ProgressUpdateResult(
            record=record,
            accepted_delta=acc.accepted_delta,
            just_completed=acc.just_completed,
            certificate=certificate,
        )

    def _record_activity(
        self, tx: Repos, device: Device, day: date, acc: Accumulation
    ) -> None:
        delta = max(acc.accepted_delta, 0.0)
        if delta <= 0 and not acc.is_new and not acc.just_completed:
            return
        activity = tx.progress.get_activity(device.device_id, day, for_update=True)
        is_new = activity is None
        if is_new:
            activity = DailyActivityRecord(
                device_id=device.device_id, day=day, student_id=device.student_id
            )
        total = activity.total_watched_sec + delta
        save = tx.progress.add_activity if is_new else tx.progress.save_activity
        save(
            replace(
                activity,
                student_id=activity.student_id or device.student_id,
                total_watched_sec=total,
                videos_started=activity.videos_started + (1 if acc.is_new else 0),
                videos_completed=activity.videos_completed
                + (1 if acc.just_completed else 0),
                xp_earned=int(total // SECONDS_PER_ACTIVITY_XP),
            )
        )

    def _touch(self, tx: Repos, device: Device, now: datetime) -> None:
        tx.devices.save(replace(device, last_seen=now))
        if device.student_id is None:
            return
        student = tx.students.get(device.student_id)
        if student is not None:
            tx.students.update(replace(student, last_active=now))


def _aware(moment: datetime) -> datetime:
    # naive client timestamps are taken as UTC; stored values are always UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)
