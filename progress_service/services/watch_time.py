"""Watch-time accumulation and completion rules.

These are the only rules that turn raw player ticks into watched time,
so both the on-device ledger and the server ingestion path call into
this module.  Nothing here touches storage.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime

from progress_service.core.errors import InvalidDuration
from progress_service.models.progress import VideoProgressRecord

# Player polling is ~1s; anything up to 3s forward is treated as real playback.
MAX_TICK_SEC = 3.0
COMPLETION_FRACTION = 0.85
NEAR_END_FRACTION = 0.70
NEAR_END_WINDOW_SEC = 30.0


@dataclass(frozen=True, slots=True)
class Accumulation:
    record: VideoProgressRecord
    accepted_delta: float
    just_completed: bool
    is_new: bool


def is_complete(watched_sec: float, duration_sec: float, position_sec: float) -> bool:
    """Dual threshold: 85% watched, or 70% watched with at most 30s left."""
    if duration_sec <= 0:
        return False
    fraction = watched_sec / duration_sec
    if fraction >= COMPLETION_FRACTION:
        return True
    near_end = duration_sec - position_sec <= NEAR_END_WINDOW_SEC
    return near_end and fraction >= NEAR_END_FRACTION


def _check_duration(duration_sec: float) -> None:
    # A stored duration is the max ever reported, so one inf would stick.
    if not math.isfinite(duration_sec) or duration_sec <= 0:
        raise InvalidDuration(duration_sec)


def accepted_delta(prev_position: float, current_time: float, is_playing: bool) -> float:
    delta = current_time - prev_position
    if is_playing and 0 <= delta <= MAX_TICK_SEC:
        return delta
    return 0.0


def accumulate_watch_time(
    previous: VideoProgressRecord | None,
    *,
    video_id: str,
    course_id: str,
    device_id: str,
    current_time_sec: float,
    duration_sec: float,
    is_playing: bool,
    now: datetime,
    student_id: str | None = None,
) -> Accumulation:
    """Apply one player tick to the previous record.

    Raises InvalidDuration unless ``duration_sec`` is finite and positive;
    the caller keeps the previous record in that case.
    """
    _check_duration(duration_sec)

    prev_position = previous.last_position_sec if previous else 0.0
    prev_watched = previous.watched_sec if previous else 0.0
    was_completed = previous.completed if previous else False

    # Upper bound is the longest duration seen, so a shorter re-encode never
    # pulls watched time below what was already recorded.
    duration = max(previous.duration_sec if previous else 0.0, duration_sec)
    delta = accepted_delta(prev_position, current_time_sec, is_playing)
    watched = min(max(prev_watched + delta, prev_watched), duration)
    completed = was_completed or is_complete(watched, duration, current_time_sec)

    if previous is None:
        record = VideoProgressRecord(
            video_id=video_id,
            course_id=course_id,
            device_id=device_id,
            student_id=student_id,
            last_position_sec=current_time_sec,
            watched_sec=watched,
            duration_sec=duration,
            completed=completed,
            completed_at=now if completed else None,
            updated_at=now,
        )
    else:
        record = replace(
            previous,
            course_id=course_id,
            last_position_sec=current_time_sec,
            watched_sec=watched,
            duration_sec=duration,
            completed=completed,
            completed_at=previous.completed_at or (now if completed else None),
            updated_at=now,
        )

    return Accumulation(
        record=record,
        accepted_delta=watched - prev_watched,
        just_completed=completed and not was_completed,
        is_new=previous is None,
    )


def merge_reported_progress(
    stored: VideoProgressRecord | None,
    *,
    video_id: str,
    course_id: str,
    device_id: str,
    student_id: str | None,
    last_position_sec: float,
    watched_sec: float,
    duration_sec: float,
    completed_hint: bool,
    reported_at: datetime,
) -> Accumulation:
    """Fold a client-reported progress state into the stored record.

    The client already ran ``accumulate_watch_time`` on its side, so the
    server only has to keep the per-record invariants against what is
    stored: watched time is the max of both and capped at the longest
    duration seen, completion is sticky, and the playhead follows
    last-writer-wins on ``updated_at``.  Replays and reordered events
    therefore yield ``accepted_delta == 0``.
    """
    _check_duration(duration_sec)

    prev_watched = stored.watched_sec if stored else 0.0
    was_completed = stored.completed if stored else False

    duration = max(stored.duration_sec if stored else 0.0, duration_sec)
    watched = min(max(prev_watched, max(watched_sec, 0.0)), duration)

    if stored is None or reported_at >= stored.updated_at:
        position, updated_at = last_position_sec, reported_at
    else:
        position, updated_at = stored.last_position_sec, stored.updated_at

    completed = (
        was_completed or completed_hint or is_complete(watched, duration, position)
    )

    if stored is None:
        record = VideoProgressRecord(
            video_id=video_id,
            course_id=course_id,
            device_id=device_id,
            student_id=student_id,
            last_position_sec=position,
            watched_sec=watched,
            duration_sec=duration,
            completed=completed,
            completed_at=reported_at if completed else None,
            updated_at=updated_at,
        )
    else:
        record = replace(
            stored,
            course_id=course_id,
            student_id=stored.student_id or student_id,
            last_position_sec=position,
            watched_sec=watched,
            duration_sec=duration,
            completed=completed,
            completed_at=stored.completed_at or (reported_at if completed else None),
            updated_at=updated_at,
        )

    return Accumulation(
        record=record,
        accepted_delta=watched - prev_watched,
        just_completed=completed and not was_completed,
        is_new=stored is None,
    )
