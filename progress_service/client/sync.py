"""HTTP client that pushes a ledger's pending items to the server.

Each sync point sends the whole pending queue as one batch.  Items the
server acknowledged (or permanently rejected) are removed from the
ledger; on a transport failure or a 5xx nothing is removed and
TransientError is raised, so the next sync point retries the same
items.  Re-sending is safe: the server merges against its stored
record and ignores anything it has already counted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from progress_service.client.ledger import ProgressLedger
from progress_service.core.errors import (
    ClassNotFound,
    ConflictError,
    NotFoundError,
    ProgressServiceError,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 10.0


@dataclass(frozen=True, slots=True)
class SyncReport:
    sent: int
    accepted: int
    rejected: int


class ProgressSyncClient:
    def __init__(
        self,
        ledger: ProgressLedger,
        base_url: str = "http://localhost:8000",
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self._ledger = ledger
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    def __enter__(self) -> ProgressSyncClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def register_device(
        self, platform: str, app_version: str, device_name: str | None = None
    ) -> None:
        self._post(
            "/v1/progress/register-device",
            {
                "device_id": self._ledger.device_id,
                "platform": platform,
                "app_version": app_version,
                "device_name": device_name,
            },
        )

    def join_class(
        self,
        class_code: str,
        first_name: str,
        last_name: str,
        email: str | None = None,
    ) -> dict:
        return self._post(
            "/v1/progress/join-class",
            {
                "device_id": self._ledger.device_id,
                "class_code": class_code,
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
            },
        )

    def sync(self) -> SyncReport:
        items = self._ledger.pending_sync()
        if not items:
            return SyncReport(sent=0, accepted=0, rejected=0)

        body = self._post(
            "/v1/progress/sync",
            {
                "device_id": self._ledger.device_id,
                "items": [
                    {
                        "video_id": item.video_id,
                        "course_id": item.course_id,
                        "last_position_sec": item.last_position_sec,
                        "watched_sec": item.watched_sec,
                        "total_duration_sec": item.total_duration_sec,
                        "completed": item.completed,
                        "updated_at": item.updated_at.isoformat(),
                    }
                    for item in items
                ],
            },
        )

        done: list[str] = []
        accepted = rejected = 0
        for result in body.get("results", []):
            index = result.get("index")
            if not isinstance(index, int) or not 0 <= index < len(items):
                continue
            item = items[index]
            if result.get("accepted"):
                accepted += 1
            else:
                # the server will reject this state every time; stop resending it
                rejected += 1
                logger.warning(
                    "Server rejected progress for %s: %s",
                    item.video_id,
                    result.get("error"),
                    extra={"device_id": self._ledger.device_id},
                )
            done.append(item.item_id)

        self._ledger.mark_synced(done)
        logger.info(
            "Synced %d items (%d accepted, %d rejected)",
            len(items),
            accepted,
            rejected,
            extra={"device_id": self._ledger.device_id},
        )
        return SyncReport(sent=len(items), accepted=accepted, rejected=rejected)

    def _post(self, path: str, payload: dict) -> dict:
        try:
            response = self._client.post(path, json=payload)
        except httpx.TransportError as exc:
            raise TransientError(f"POST {path} failed: {exc.__class__.__name__}") from exc
        _raise_for_status(response)
        return response.json()


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    status = response.status_code
    try:
        detail = response.json()
    except ValueError:
        detail = {}
    message = _message(detail) or response.reason_phrase

    if status >= 500:
        raise TransientError(f"server error {status}: {message}")
    if status == 404:
        if detail.get("error") == "ClassNotFound":
            raise ClassNotFound(detail.get("class_code", ""))
        raise NotFoundError(message)
    if status == 409:
        raise ConflictError(message)
    if status == 422:
        raise ValidationError(message)
    raise ProgressServiceError(f"unexpected status {status}: {message}")


def _message(detail: object) -> str:
    if not isinstance(detail, dict):
        return ""
    value = detail.get("message") or detail.get("detail") or ""
    return value if isinstance(value, str) else str(value)
