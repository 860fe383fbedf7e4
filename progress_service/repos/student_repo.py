from __future__ import annotations

from typing import Protocol

from progress_service.core.errors import ConflictError
from progress_service.models.student import Student


class StudentRepo(Protocol):
    def get(self, student_id: str) -> Student | None: ...
    def get_by_email(self, teacher_id: str, email: str) -> Student | None: ...
    def add(self, student: Student) -> None: ...
    def update(self, student: Student) -> None: ...
    def list_by_teacher(self, teacher_id: str) -> list[Student]: ...


class InMemoryStudentRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, Student] = {}

    def get(self, student_id: str) -> Student | None:
        return self._by_id.get(student_id)

    def get_by_email(self, teacher_id: str, email: str) -> Student | None:
        for student in self._by_id.values():
            if student.teacher_id == teacher_id and student.email == email:
                return student
        return None

    def add(self, student: Student) -> None:
        if student.student_id in self._by_id:
            raise ConflictError(f"student {student.student_id} already exists")
        self._check_email_free(student)
        self._by_id[student.student_id] = student

    def update(self, student: Student) -> None:
        if student.student_id not in self._by_id:
            raise KeyError(student.student_id)
        self._check_email_free(student)
        self._by_id[student.student_id] = student

    def list_by_teacher(self, teacher_id: str) -> list[Student]:
        return [s for s in self._by_id.values() if s.teacher_id == teacher_id]

    def _check_email_free(self, student: Student) -> None:
        if student.email is None:
            return
        owner = self.get_by_email(student.teacher_id, student.email)
        if owner is not None and owner.student_id != student.student_id:
            raise ConflictError("email already used by another student of this class")
