"""SQL implementation of StudentRepo.

The ``(teacher_id, email)`` unique constraint is the arbiter when two
devices join with the same email at the same time: the loser's insert
raises ConflictError and the identity resolver retries against the
winner's row.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from progress_service.core.errors import ConflictError
from progress_service.db.tables import StudentRow
from progress_service.models.student import Student
from progress_service.repos.sql_common import as_utc, insert_or_conflict


class SqlStudentRepo:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, student_id: str) -> Student | None:
        row = self._session.get(StudentRow, student_id)
        if row is None:
            return None
        return _row_to_student(row)

    def get_by_email(self, teacher_id: str, email: str) -> Student | None:
        stmt = select(StudentRow).where(
            StudentRow.teacher_id == teacher_id, StudentRow.email == email
        )
        row = self._session.scalars(stmt).one_or_none()
        if row is None:
            return None
        return _row_to_student(row)

    def add(self, student: Student) -> None:
        insert_or_conflict(
            self._session,
            StudentRow(
                student_id=student.student_id,
                teacher_id=student.teacher_id,
                school_id=student.school_id,
                first_name=student.first_name,
                last_name=student.last_name,
                email=student.email,
                class_code=student.class_code,
                joined_at=student.joined_at,
                last_active=student.last_active,
            ),
            f"student {student.student_id} conflicts with an existing student",
        )

    def update(self, student: Student) -> None:
        row = self._session.get(StudentRow, student.student_id)
        if row is None:
            raise KeyError(student.student_id)
        try:
            with self._session.begin_nested():
                row.first_name = student.first_name
                row.last_name = student.last_name
                row.email = student.email
                row.last_active = student.last_active
        except IntegrityError as exc:
            raise ConflictError(
                "email already used by another student of this class"
            ) from exc

    def list_by_teacher(self, teacher_id: str) -> list[Student]:
        stmt = (
            select(StudentRow)
            .where(StudentRow.teacher_id == teacher_id)
            .order_by(StudentRow.joined_at)
        )
        return [_row_to_student(r) for r in self._session.scalars(stmt)]


def _row_to_student(row: StudentRow) -> Student:
    return Student(
        student_id=row.student_id,
        teacher_id=row.teacher_id,
        school_id=row.school_id,
        first_name=row.first_name,
        last_name=row.last_name or "",
        email=row.email,
        class_code=row.class_code,
        joined_at=as_utc(row.joined_at),
        last_active=as_utc(row.last_active),
    )
