from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


def normalize_email(email: str | None) -> str | None:
    """Lower-case and strip; blank becomes None so it never takes part in dedup."""
    if email is None:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


@dataclass(frozen=True, slots=True)
class Student:
    student_id: str
    teacher_id: str
    school_id: str
    first_name: str
    last_name: str
    class_code: str
    joined_at: datetime
    last_active: datetime
    email: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
