"""Composition root for the progress services.

``ProgressEngine`` wires one store, one cache and one clock into every
service and exposes the operations the API calls.  The FastAPI lifespan
builds exactly one engine per app; tests build their own against an
in-memory store.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime, tzinfo

from progress_service.core.clock import Clock, utc_now
from progress_service.core.config import Settings
from progress_service.core.errors import NotFoundError
from progress_service.models.certificate import Certificate, CertificateStatus, ReviewAction
from progress_service.models.device import Device
from progress_service.repos.unit_of_work import Store
from progress_service.services import aggregator
from progress_service.services.aggregator import ProgressSummary
from progress_service.services.cache import CacheService, summary_key
from progress_service.services.catalog import DEFAULT_CATALOG, CourseCatalog
from progress_service.services.certificates import CertificateListing, CertificateWorkflow
from progress_service.services.device_progress import DeviceProgress, DeviceProgressView
from progress_service.services.devices import DeviceRegistry
from progress_service.services.identity import IdentityResolver, JoinResult
from progress_service.services.ingestion import (
    BatchItemResult,
    ProgressIngestion,
    ProgressUpdate,
    ProgressUpdateResult,
)
from progress_service.services.roster import (
    Onboarding,
    Roster,
    RosterService,
    StudentDetail,
)

logger = logging.getLogger(__name__)


def summary_payload(student_id: str, summary: ProgressSummary) -> dict:
    current, needed, fraction = summary.level_progress
    return {
        "student_id": student_id,
        "total_xp": summary.total_xp,
        "streak": summary.streak,
        "level": summary.level.number,
        "level_title": summary.level.title,
        "level_progress": {"current": current, "needed": needed, "fraction": fraction},
        "certification_tier": summary.certification_tier.value,
        "certification_title": summary.certification_tier.display_name,
        "completed_courses": list(summary.completed_courses),
        "videos_completed": summary.videos_completed,
        "total_watched_sec": summary.total_watched_sec,
        "courses": [
            {
                "course_id": s.course_id,
                "completed_videos": s.completed_videos,
                "total_videos": s.total_videos_required,
                "is_completed": s.is_completed,
            }
            for s in summary.courses
        ],
    }


class ProgressEngine:
    def __init__(
        self,
        store: Store,
        cache: CacheService,
        *,
        tz: tzinfo = UTC,
        window_days: int = aggregator.DEFAULT_STREAK_WINDOW_DAYS,
        cache_ttl: int = 300,
        catalog: CourseCatalog = DEFAULT_CATALOG,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.cache = cache
        self.catalog = catalog
        self._cache_ttl = cache_ttl
        self._clock = clock

        self.devices = DeviceRegistry(store, clock=clock)
        self.certificates = CertificateWorkflow(store, catalog=catalog, clock=clock)
        self.identity = IdentityResolver(
            store, cache, self.certificates, catalog=catalog, clock=clock
        )
        self.ingestion = ProgressIngestion(
            store, cache, self.certificates, tz=tz, catalog=catalog, clock=clock
        )
        self.roster = RosterService(
            store, tz=tz, window_days=window_days, catalog=catalog, clock=clock
        )
        self.device_progress = DeviceProgressView(
            store, tz=tz, window_days=window_days, catalog=catalog, clock=clock
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, store: Store, cache: CacheService
    ) -> ProgressEngine:
        return cls(
            store,
            cache,
            tz=settings.tz,
            window_days=settings.streak_window_days,
            cache_ttl=settings.summary_cache_ttl,
        )

    # --- devices and identity ---

    def register_device(
        self,
        device_id: str,
        platform: str,
        app_version: str,
        device_name: str | None = None,
    ) -> Device:
        return self.devices.register_device(device_id, platform, app_version, device_name)

    def join_class(
        self,
        device_id: str,
        class_code: str,
        first_name: str,
        last_name: str,
        email: str | None = None,
    ) -> JoinResult:
        return self.identity.join_class(device_id, class_code, first_name, last_name, email)

    # --- progress ---

    def update_video_progress(
        self,
        device_id: str,
        video_id: str,
        course_id: str,
        last_position_sec: float,
        watched_sec: float,
        total_duration_sec: float,
        completed_hint: bool = False,
        client_updated_at: datetime | None = None,
    ) -> ProgressUpdateResult:
        return self.ingestion.update_video_progress(
            device_id,
            video_id,
            course_id,
            last_position_sec,
            watched_sec,
            total_duration_sec,
            completed_hint=completed_hint,
            client_updated_at=client_updated_at,
        )

    def sync_batch(
        self, device_id: str, items: Iterable[ProgressUpdate]
    ) -> list[BatchItemResult]:
        return self.ingestion.sync_batch(device_id, items)

    def get_device_progress(
        self, device_id: str, course_id: str | None = None
    ) -> DeviceProgress:
        return self.device_progress.get_device_progress(device_id, course_id)

    def get_student_summary(self, student_id: str) -> dict:
        """Derived state for one student, read-through cached."""
        key = summary_key(student_id)
        cached = self.cache.get(key)
        if cached is not None:
            return json.loads(cached)

        now = self._clock()
        with self.store.begin() as tx:
            if tx.students.get(student_id) is None:
                raise NotFoundError("Student not found")
            summary = self.roster.summarize_student(tx, student_id, now)

        payload = summary_payload(student_id, summary)
        self.cache.set(key, json.dumps(payload), self._cache_ttl)
        return payload

    # --- teachers ---

    def get_student_roster(self, teacher_id: str) -> Roster:
        return self.roster.get_student_roster(teacher_id)

    def get_student_detail(self, teacher_id: str, student_id: str) -> StudentDetail:
        return self.roster.get_student_detail(teacher_id, student_id)

    def onboard_school(
        self,
        school_name: str,
        program_name: str,
        teacher_name: str,
        teacher_email: str,
        class_code: str,
        district: str | None = None,
    ) -> Onboarding:
        return self.roster.onboard_school(
            school_name, program_name, teacher_name, teacher_email, class_code, district
        )

    # --- certificates ---

    def check_and_issue(self, student_id: str, course_id: str) -> Certificate | None:
        return self.certificates.check_and_issue(student_id, course_id)

    def get_certificates(
        self, teacher_id: str, status: CertificateStatus | str | None = None
    ) -> CertificateListing:
        return self.certificates.list_for_teacher(teacher_id, status)

    def review_certificate(
        self, cert_id: str, action: ReviewAction | str, teacher_id: str
    ) -> Certificate:
        return self.certificates.review(cert_id, action, teacher_id)
