"""SQL implementation of ClassRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_service.db.tables import SchoolRow, TeacherRow
from progress_service.models.classroom import School, Teacher
from progress_service.repos.sql_common import insert_or_conflict


class SqlClassRepo:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_school(self, school_id: str) -> School | None:
        row = self._session.get(SchoolRow, school_id)
        if row is None:
            return None
        return School(
            school_id=row.school_id,
            name=row.name,
            program=row.program,
            district=row.district,
        )

    def add_school(self, school: School) -> None:
        self._session.add(
            SchoolRow(
                school_id=school.school_id,
                name=school.name,
                program=school.program,
                district=school.district,
            )
        )
        self._session.flush()

    def get_teacher(self, teacher_id: str) -> Teacher | None:
        row = self._session.get(TeacherRow, teacher_id)
        if row is None:
            return None
        return _row_to_teacher(row)

    def get_teacher_by_class_code(self, class_code: str) -> Teacher | None:
        stmt = select(TeacherRow).where(TeacherRow.class_code == class_code)
        row = self._session.scalars(stmt).one_or_none()
        if row is None:
            return None
        return _row_to_teacher(row)

    def add_teacher(self, teacher: Teacher) -> None:
        insert_or_conflict(
            self._session,
            TeacherRow(
                teacher_id=teacher.teacher_id,
                school_id=teacher.school_id,
                name=teacher.name,
                email=teacher.email,
                class_code=teacher.class_code,
                department=teacher.department,
            ),
            f"class code {teacher.class_code} already exists",
        )


def _row_to_teacher(row: TeacherRow) -> Teacher:
    return Teacher(
        teacher_id=row.teacher_id,
        school_id=row.school_id,
        name=row.name,
        email=row.email,
        class_code=row.class_code,
        department=row.department,
    )
