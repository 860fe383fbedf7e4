from __future__ import annotations

from typing import Protocol

from progress_service.core.errors import ConflictError
from progress_service.models.classroom import School, Teacher


class ClassRepo(Protocol):
    """Schools and teachers; a class code belongs to exactly one teacher."""

    def get_school(self, school_id: str) -> School | None: ...
    def add_school(self, school: School) -> None: ...
    def get_teacher(self, teacher_id: str) -> Teacher | None: ...
    def get_teacher_by_class_code(self, class_code: str) -> Teacher | None: ...
    def add_teacher(self, teacher: Teacher) -> None: ...


class InMemoryClassRepo:
    def __init__(self) -> None:
        self._schools: dict[str, School] = {}
        self._teachers: dict[str, Teacher] = {}

    def get_school(self, school_id: str) -> School | None:
        return self._schools.get(school_id)

    def add_school(self, school: School) -> None:
        self._schools[school.school_id] = school

    def get_teacher(self, teacher_id: str) -> Teacher | None:
        return self._teachers.get(teacher_id)

    def get_teacher_by_class_code(self, class_code: str) -> Teacher | None:
        for teacher in self._teachers.values():
            if teacher.class_code == class_code:
                return teacher
        return None

    def add_teacher(self, teacher: Teacher) -> None:
        if self.get_teacher_by_class_code(teacher.class_code) is not None:
            raise ConflictError(f"class code {teacher.class_code} already exists")
        self._teachers[teacher.teacher_id] = teacher
