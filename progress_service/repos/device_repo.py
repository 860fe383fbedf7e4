from __future__ import annotations

from typing import Protocol

from progress_service.core.errors import ConflictError
from progress_service.models.device import Device


class DeviceRepo(Protocol):
    def get(self, device_id: str) -> Device | None: ...
    def add(self, device: Device) -> None: ...
    def save(self, device: Device) -> None: ...
    def list_by_student(self, student_id: str) -> list[Device]: ...


class InMemoryDeviceRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, Device] = {}

    def get(self, device_id: str) -> Device | None:
        return self._by_id.get(device_id)

    def add(self, device: Device) -> None:
        if device.device_id in self._by_id:
            raise ConflictError(f"device {device.device_id} already exists")
        self._by_id[device.device_id] = device

    def save(self, device: Device) -> None:
        self._by_id[device.device_id] = device

    def list_by_student(self, student_id: str) -> list[Device]:
        return [d for d in self._by_id.values() if d.student_id == student_id]
