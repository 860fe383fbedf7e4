from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from progress_service.core.clock import Clock, utc_now
from progress_service.core.errors import ConflictError, ValidationError
from progress_service.core.metrics import DEVICE_REGISTRATIONS
from progress_service.models.device import Device
from progress_service.repos.unit_of_work import Repos, Store

logger = logging.getLogger(__name__)

UNKNOWN_PLATFORM = "unknown"
DEFAULT_APP_VERSION = "1.0.0"


def ensure_device(tx: Repos, device_id: str, now: datetime) -> Device:
    """Return the stored device, registering an unknown one on first sight."""
    device = tx.devices.get(device_id)
    if device is not None:
        return device
    device = Device.new(
        device_id=device_id,
        platform=UNKNOWN_PLATFORM,
        app_version=DEFAULT_APP_VERSION,
        now=now,
    )
    tx.devices.add(device)
    DEVICE_REGISTRATIONS.labels(outcome="created").inc()
    logger.info("Auto-registered device %s", device_id, extra={"device_id": device_id})
    return device


class DeviceRegistry:
    def __init__(self, store: Store, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def register_device(
        self,
        device_id: str,
        platform: str,
        app_version: str,
        device_name: str | None = None,
    ) -> Device:
        """Idempotent upsert.  Never touches an assigned student_id."""
        device_id = (device_id or "").strip()
        platform = (platform or "").strip()
        if not device_id:
            raise ValidationError("device_id is required")
        if not platform:
            raise ValidationError("platform is required")
        app_version = (app_version or "").strip() or DEFAULT_APP_VERSION

        try:
            device, outcome = self._upsert(device_id, platform, app_version, device_name)
        except ConflictError:
            # lost a first-registration race; the retry refreshes the winner
            device, outcome = self._upsert(device_id, platform, app_version, device_name)

        DEVICE_REGISTRATIONS.labels(outcome=outcome).inc()
        logger.info(
            "Device %s %s (platform=%s version=%s)",
            device_id,
            outcome,
            platform,
            app_version,
            extra={"device_id": device_id},
        )
        return device

    def _upsert(
        self,
        device_id: str,
        platform: str,
        app_version: str,
        device_name: str | None,
    ) -> tuple[Device, str]:
        now = self._clock()
        with self._store.begin() as tx:
            existing = tx.devices.get(device_id)
            if existing is None:
                device = Device.new(
                    device_id=device_id,
                    platform=platform,
                    app_version=app_version,
                    now=now,
                    device_name=device_name,
                )
                tx.devices.add(device)
                outcome = "created"
            else:
                device = replace(
                    existing,
                    platform=platform,
                    app_version=app_version,
                    device_name=device_name or existing.device_name,
                    last_seen=now,
                )
                tx.devices.save(device)
                outcome = "refreshed"
        return device, outcome

    def get_device(self, device_id: str) -> Device | None:
        with self._store.begin() as tx:
            return tx.devices.get(device_id)
