"""SQL implementation of DeviceRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_service.db.tables import DeviceRow
from progress_service.models.device import Device
from progress_service.repos.sql_common import as_utc, insert_or_conflict


class SqlDeviceRepo:
    """Satisfies the DeviceRepo Protocol via SQLAlchemy."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, device_id: str) -> Device | None:
        row = self._session.get(DeviceRow, device_id)
        if row is None:
            return None
        return _row_to_device(row)

    def add(self, device: Device) -> None:
        insert_or_conflict(
            self._session, _device_to_row(device), f"device {device.device_id} already exists"
        )

    def save(self, device: Device) -> None:
        self._session.merge(_device_to_row(device))
        self._session.flush()

    def list_by_student(self, student_id: str) -> list[Device]:
        stmt = (
            select(DeviceRow)
            .where(DeviceRow.student_id == student_id)
            .order_by(DeviceRow.first_seen)
        )
        return [_row_to_device(r) for r in self._session.scalars(stmt)]


def _device_to_row(device: Device) -> DeviceRow:
    return DeviceRow(
        device_id=device.device_id,
        platform=device.platform,
        app_version=device.app_version,
        device_name=device.device_name,
        first_seen=device.first_seen,
        last_seen=device.last_seen,
        student_id=device.student_id,
    )


def _row_to_device(row: DeviceRow) -> Device:
    return Device(
        device_id=row.device_id,
        platform=row.platform,
        app_version=row.app_version,
        device_name=row.device_name,
        first_seen=as_utc(row.first_seen),
        last_seen=as_utc(row.last_seen),
        student_id=row.student_id,
    )
