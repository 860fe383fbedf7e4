"""SQL implementation of ProgressRepo.

``for_update=True`` takes a row lock (SELECT ... FOR UPDATE) so two
concurrent syncs for the same (device, video) serialise on the stored
record instead of both merging against the same stale copy.  SQLite
ignores the clause; its writer lock already serialises transactions.

A row that does not exist yet cannot be locked, so first writes go
through ``add_video``/``add_activity``: two requests racing to create
the same key meet on the primary key and the loser gets ConflictError.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_service.db.tables import DailyActivityRow, VideoProgressRow
from progress_service.models.progress import DailyActivityRecord, VideoProgressRecord
from progress_service.repos.sql_common import as_utc, insert_or_conflict


class SqlProgressRepo:
    def __init__(self, session: Session) -> None:
        self._session = session

    # --- video progress ---

    def get_video(
        self, device_id: str, video_id: str, *, for_update: bool = False
    ) -> VideoProgressRecord | None:
        stmt = select(VideoProgressRow).where(
            VideoProgressRow.device_id == device_id,
            VideoProgressRow.video_id == video_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = self._session.scalars(stmt).one_or_none()
        if row is None:
            return None
        return _row_to_video(row)

    def add_video(self, record: VideoProgressRecord) -> None:
        insert_or_conflict(
            self._session, _video_to_row(record), f"progress {record.key} already exists"
        )

    def save_video(self, record: VideoProgressRecord) -> None:
        self._session.merge(_video_to_row(record))
        self._session.flush()

    def list_videos_by_device(self, device_id: str) -> list[VideoProgressRecord]:
        stmt = select(VideoProgressRow).where(VideoProgressRow.device_id == device_id)
        return [_row_to_video(r) for r in self._session.scalars(stmt)]

    def list_videos_by_student(self, student_id: str) -> list[VideoProgressRecord]:
        stmt = select(VideoProgressRow).where(VideoProgressRow.student_id == student_id)
        return [_row_to_video(r) for r in self._session.scalars(stmt)]

    # --- daily activity ---

    def get_activity(
        self, device_id: str, day: date, *, for_update: bool = False
    ) -> DailyActivityRecord | None:
        stmt = select(DailyActivityRow).where(
            DailyActivityRow.device_id == device_id, DailyActivityRow.day == day
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = self._session.scalars(stmt).one_or_none()
        if row is None:
            return None
        return _row_to_activity(row)

    def add_activity(self, record: DailyActivityRecord) -> None:
        insert_or_conflict(
            self._session, _activity_to_row(record), f"activity {record.key} already exists"
        )

    def save_activity(self, record: DailyActivityRecord) -> None:
        self._session.merge(_activity_to_row(record))
        self._session.flush()

    def list_activity_by_device(self, device_id: str) -> list[DailyActivityRecord]:
        stmt = select(DailyActivityRow).where(DailyActivityRow.device_id == device_id)
        return [_row_to_activity(r) for r in self._session.scalars(stmt)]

    def list_activity_by_student(self, student_id: str) -> list[DailyActivityRecord]:
        stmt = select(DailyActivityRow).where(DailyActivityRow.student_id == student_id)
        return [_row_to_activity(r) for r in self._session.scalars(stmt)]

    # --- orphan merge ---

    def claim_orphan_videos(
        self, device_id: str, student_id: str
    ) -> list[VideoProgressRecord]:
        stmt = (
            select(VideoProgressRow)
            .where(
                VideoProgressRow.device_id == device_id,
                VideoProgressRow.student_id.is_(None),
            )
            .with_for_update()
        )
        rows = list(self._session.scalars(stmt))
        for row in rows:
            row.student_id = student_id
        self._session.flush()
        return [_row_to_video(r) for r in rows]

    def claim_orphan_activity(self, device_id: str, student_id: str) -> int:
        stmt = (
            select(DailyActivityRow)
            .where(
                DailyActivityRow.device_id == device_id,
                DailyActivityRow.student_id.is_(None),
            )
            .with_for_update()
        )
        rows = list(self._session.scalars(stmt))
        for row in rows:
            row.student_id = student_id
        self._session.flush()
        return len(rows)


def _video_to_row(record: VideoProgressRecord) -> VideoProgressRow:
    return VideoProgressRow(
        device_id=record.device_id,
        video_id=record.video_id,
        course_id=record.course_id,
        student_id=record.student_id,
        last_position_sec=record.last_position_sec,
        watched_sec=record.watched_sec,
        duration_sec=record.duration_sec,
        completed=record.completed,
        completed_at=record.completed_at,
        updated_at=record.updated_at,
    )


def _activity_to_row(record: DailyActivityRecord) -> DailyActivityRow:
    return DailyActivityRow(
        device_id=record.device_id,
        day=record.day,
        student_id=record.student_id,
        total_watched_sec=record.total_watched_sec,
        videos_completed=record.videos_completed,
        videos_started=record.videos_started,
        xp_earned=record.xp_earned,
    )


def _row_to_video(row: VideoProgressRow) -> VideoProgressRecord:
    return VideoProgressRecord(
        video_id=row.video_id,
        course_id=row.course_id,
        device_id=row.device_id,
        student_id=row.student_id,
        last_position_sec=row.last_position_sec,
        watched_sec=row.watched_sec,
        duration_sec=row.duration_sec,
        completed=row.completed,
        completed_at=as_utc(row.completed_at),
        updated_at=as_utc(row.updated_at),
    )


def _row_to_activity(row: DailyActivityRow) -> DailyActivityRecord:
    return DailyActivityRecord(
        device_id=row.device_id,
        day=row.day,
        student_id=row.student_id,
        total_watched_sec=row.total_watched_sec,
        videos_completed=row.videos_completed,
        videos_started=row.videos_started,
        xp_earned=row.xp_earned,
    )
