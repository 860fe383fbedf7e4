from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Device:
    """One app installation.  Anonymous until ``student_id`` is set."""

    device_id: str
    platform: str
    app_version: str
    first_seen: datetime
    last_seen: datetime
    device_name: str | None = None
    student_id: str | None = None

    @staticmethod
    def new(
        *,
        device_id: str,
        platform: str,
        app_version: str,
        now: datetime,
        device_name: str | None = None,
    ) -> Device:
        return Device(
            device_id=device_id,
            platform=platform,
            app_version=app_version,
            first_seen=now,
            last_seen=now,
            device_name=device_name,
        )

    @property
    def is_linked(self) -> bool:
        return self.student_id is not None
