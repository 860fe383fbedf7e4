"""Error taxonomy shared by the services, the device ledger and the API.

The API layer maps these onto status codes (see api/errors.py); the
services never raise HTTPException themselves.
"""

from __future__ import annotations


class ProgressServiceError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(ProgressServiceError, ValueError):
    """A required field is missing or malformed.  Not retried."""


class InvalidDuration(ValidationError):
    def __init__(self, duration_sec: float) -> None:
        super().__init__(f"duration must be a positive finite number (got {duration_sec!r})")
        self.duration_sec = duration_sec


class NotFoundError(ProgressServiceError, LookupError):
    """A referenced entity does not exist."""


class ClassNotFound(NotFoundError):
    def __init__(self, class_code: str) -> None:
        super().__init__("This class does not exist")
        self.class_code = class_code


class ConflictError(ProgressServiceError):
    """A write would violate a uniqueness rule or an illegal state transition."""


class TransientError(ProgressServiceError):
    """Network or storage temporarily unavailable.  Safe to retry."""


class DataCorruption(ProgressServiceError):
    """A persisted snapshot could not be parsed."""
