from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


def normalize_class_code(class_code: str) -> str:
    return class_code.strip().upper()


@dataclass(frozen=True, slots=True)
class School:
    school_id: str
    name: str
    program: str
    district: str | None = None

    @staticmethod
    def new(*, name: str, program: str, district: str | None = None) -> School:
        return School(
            school_id=f"school-{uuid4().hex[:12]}",
            name=name,
            program=program,
            district=district,
        )


@dataclass(frozen=True, slots=True)
class Teacher:
    teacher_id: str
    school_id: str
    name: str
    email: str
    class_code: str
    department: str = "CTE"

    @staticmethod
    def new(*, school_id: str, name: str, email: str, class_code: str) -> Teacher:
        return Teacher(
            teacher_id=f"teacher-{uuid4().hex[:12]}",
            school_id=school_id,
            name=name,
            email=email.strip().lower(),
            class_code=normalize_class_code(class_code),
        )


@dataclass(frozen=True, slots=True)
class ClassDetails:
    """What a student sees after joining: who teaches the class and where."""

    teacher_name: str
    teacher_email: str
    school_name: str
    program_name: str
    class_code: str
