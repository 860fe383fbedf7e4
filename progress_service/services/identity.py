"""Identity resolution: binding a device to a durable student.

A device collects progress anonymously from first launch.  When the
learner joins a class the device is bound to exactly one student and
every orphaned record it produced is re-tagged with that student's id.

Resolution order (first match wins):

  1. the device is already bound          -> that student (first join wins)
  2. an email is given and a student with
     that email exists under the teacher  -> that student
  3. a student with the derived id exists -> that student
  4. otherwise                            -> a new student with the derived id

The derived id is a hash of (email, device) or of the device alone, so
replaying a join always lands on the same student.  Binding and the
orphan merge share one unit of work; a concurrent join with the same
email loses on the (teacher_id, email) uniqueness rule and is retried
once, at which point step 2 finds the winner.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, replace
from datetime import datetime

from progress_service.core.clock import Clock, utc_now
from progress_service.core.errors import ClassNotFound, ConflictError, ValidationError
from progress_service.core.metrics import CLASS_JOINS, MERGED_RECORDS
from progress_service.models.classroom import ClassDetails, Teacher, normalize_class_code
from progress_service.models.device import Device
from progress_service.models.student import Student, normalize_email
from progress_service.repos.unit_of_work import Repos, Store
from progress_service.services.cache import CacheService, summary_key
from progress_service.services.catalog import DEFAULT_CATALOG, CourseCatalog
from progress_service.services.certificates import CertificateWorkflow
from progress_service.services.devices import ensure_device

logger = logging.getLogger(__name__)


def derive_student_id(device_id: str, email: str | None) -> str:
    if email:
        digest = hashlib.sha256(f"{email}:{device_id}".encode()).hexdigest()
        return f"student-{digest[:16]}"
    digest = hashlib.sha256(device_id.encode()).hexdigest()
    return f"student-device-{digest[:16]}"


@dataclass(frozen=True, slots=True)
class JoinResult:
    student_id: str
    teacher_id: str
    school_id: str
    class_details: ClassDetails
    merged_records: int
    outcome: str  # "created", "merged" or "rebound"


class IdentityResolver:
    def __init__(
        self,
        store: Store,
        cache: CacheService,
        certificates: CertificateWorkflow,
        *,
        catalog: CourseCatalog = DEFAULT_CATALOG,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._certificates = certificates
        self._catalog = catalog
        self._clock = clock

    def join_class(
        self,
        device_id: str,
        class_code: str,
        first_name: str,
        last_name: str,
        email: str | None = None,
    ) -> JoinResult:
        device_id = (device_id or "").strip()
        code = normalize_class_code(class_code or "")
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not device_id:
            raise ValidationError("device_id is required")
        if not code:
            raise ValidationError("class_code is required")
        if not first_name:
            raise ValidationError("first_name is required")
        email = normalize_email(email)

        try:
            result = self._join_once(device_id, code, first_name, last_name, email)
        except ConflictError:
            logger.info(
                "Concurrent join for %s; retrying",
                device_id,
                extra={"device_id": device_id},
            )
            result = self._join_once(device_id, code, first_name, last_name, email)

        self._cache.delete(summary_key(result.student_id))
        CLASS_JOINS.labels(outcome=result.outcome).inc()
        logger.info(
            "Device %s joined class %s as %s (%s, %d records merged)",
            device_id,
            code,
            result.student_id,
            result.outcome,
            result.merged_records,
            extra={"device_id": device_id, "student_id": result.student_id},
        )
        return result

    def _join_once(
        self,
        device_id: str,
        code: str,
        first_name: str,
        last_name: str,
        email: str | None,
    ) -> JoinResult:
        now = self._clock()
        with self._store.begin() as tx:
            teacher = tx.classes.get_teacher_by_class_code(code)
            if teacher is None:
                CLASS_JOINS.labels(outcome="class_not_found").inc()
                logger.warning("Join rejected: unknown class code %s", code)
                raise ClassNotFound(code)

            device = ensure_device(tx, device_id, now)
            student, outcome = self._resolve_student(
                tx, device, teacher, first_name, last_name, email, now
            )
            if student.teacher_id != teacher.teacher_id:
                logger.warning(
                    "Device %s is bound to %s; ignoring class code %s",
                    device_id,
                    student.student_id,
                    code,
                    extra={"device_id": device_id},
                )
                teacher = tx.classes.get_teacher(student.teacher_id) or teacher

            if device.student_id != student.student_id:
                tx.devices.save(
                    replace(device, student_id=student.student_id, last_seen=now)
                )

            merged = self._merge_orphans(tx, device_id, student.student_id, now)
            school = tx.classes.get_school(teacher.school_id)

        details = ClassDetails(
            teacher_name=teacher.name,
            teacher_email=teacher.email,
            school_name=school.name if school else "",
            program_name=school.program if school else "",
            class_code=teacher.class_code,
        )
        return JoinResult(
            student_id=student.student_id,
            teacher_id=teacher.teacher_id,
            school_id=teacher.school_id,
            class_details=details,
            merged_records=merged,
            outcome=outcome,
        )

    def _resolve_student(
        self,
        tx: Repos,
        device: Device,
        teacher: Teacher,
        first_name: str,
        last_name: str,
        email: str | None,
        now: datetime,
    ) -> tuple[Student, str]:
        if device.student_id is not None:
            bound = tx.students.get(device.student_id)
            if bound is not None:
                updated = replace(
                    bound, first_name=first_name, last_name=last_name, last_active=now
                )
                if (
                    bound.email is None
                    and email is not None
                    and tx.students.get_by_email(bound.teacher_id, email) is None
                ):
                    updated = replace(updated, email=email)
                tx.students.update(updated)
                return updated, "rebound"

        if email is not None:
            existing = tx.students.get_by_email(teacher.teacher_id, email)
            if existing is not None:
                updated = replace(
                    existing, first_name=first_name, last_name=last_name, last_active=now
                )
                tx.students.update(updated)
                return updated, "merged"

        student_id = derive_student_id(device.device_id, email)
        existing = tx.students.get(student_id)
        if existing is not None:
            updated = replace(
                existing, first_name=first_name, last_name=last_name, last_active=now
            )
            tx.students.update(updated)
            return updated, "merged"

        student = Student(
            student_id=student_id,
            teacher_id=teacher.teacher_id,
            school_id=teacher.school_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            class_code=teacher.class_code,
            joined_at=now,
            last_active=now,
        )
        tx.students.add(student)
        return student, "created"

    def _merge_orphans(
        self, tx: Repos, device_id: str, student_id: str, now: datetime
    ) -> int:
        videos = tx.progress.claim_orphan_videos(device_id, student_id)
        days = tx.progress.claim_orphan_activity(device_id, student_id)
        if videos:
            MERGED_RECORDS.labels(kind="video_progress").inc(len(videos))
        if days:
            MERGED_RECORDS.labels(kind="daily_activity").inc(days)

        touched = self._catalog.touched_courses(
            self._catalog.resolve(r.course_id, r.video_id) for r in videos
        )
        for course in touched:
            self._certificates.check_and_issue_in(tx, student_id, course.key, now)
        return len(videos) + days
