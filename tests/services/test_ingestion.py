from __future__ import annotations

from datetime import timedelta

import pytest
from prometheus_client import REGISTRY

from progress_service.core.errors import InvalidDuration, ValidationError
from progress_service.repos.unit_of_work import InMemoryStore
from progress_service.services.engine import ProgressEngine
from progress_service.services.ingestion import ProgressIngestion, ProgressUpdate
from tests.conftest import CLASS_CODE, FakeClock, StaleFirstRead, onboard, watch


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def _activity(store: InMemoryStore, device_id: str, clock: FakeClock):
    with store.begin() as tx:
        return tx.progress.get_activity(device_id, clock.today)


def _video(store: InMemoryStore, device_id: str, video_id: str):
    with store.begin() as tx:
        return tx.progress.get_video(device_id, video_id)


# ---- basic ingestion ----


def test_unknown_device_is_auto_registered(engine: ProgressEngine) -> None:
    watch(engine, "dev-new", "1-1", watched=30.0)
    device = engine.devices.get_device("dev-new")
    assert device is not None
    assert device.platform == "unknown"
    assert device.app_version == "1.0.0"
    assert device.student_id is None


def test_update_stores_record_and_activity(
    engine: ProgressEngine, store: InMemoryStore, clock: FakeClock
) -> None:
    result = watch(engine, "dev-1", "1-1", watched=125.0, course_id="course_1")

    assert result.progress_percentage == 20
    assert result.completed is False
    assert result.accepted_delta == 125.0

    record = _video(store, "dev-1", "1-1")
    assert record.course_id == "course-hv-safety"
    assert record.is_orphaned

    activity = _activity(store, "dev-1", clock)
    assert activity.total_watched_sec == 125.0
    assert activity.videos_started == 1
    assert activity.xp_earned == 12


def test_course_id_is_inferred_from_the_video_id(
    engine: ProgressEngine, store: InMemoryStore
) -> None:
    watch(engine, "dev-1", "2-3", watched=10.0, course_id="")
    assert _video(store, "dev-1", "2-3").course_id == "course-electrical-fundamentals"


# ---- replay and reordering ----


def test_replayed_update_is_not_double_counted(
    engine: ProgressEngine, store: InMemoryStore, clock: FakeClock
) -> None:
    at = clock()
    watch(engine, "dev-1", "1-1", watched=200.0, at=at)
    replay = watch(engine, "dev-1", "1-1", watched=200.0, at=at)

    assert replay.accepted_delta == 0.0
    assert _video(store, "dev-1", "1-1").watched_sec == 200.0
    activity = _activity(store, "dev-1", clock)
    assert activity.total_watched_sec == 200.0
    assert activity.videos_started == 1


def test_out_of_order_update_never_lowers_watched_time(
    engine: ProgressEngine, store: InMemoryStore, clock: FakeClock
) -> None:
    now = clock()
    watch(engine, "dev-1", "1-1", watched=300.0, at=now)
    watch(engine, "dev-1", "1-1", watched=100.0, at=now - timedelta(minutes=5))

    record = _video(store, "dev-1", "1-1")
    assert record.watched_sec == 300.0
    assert record.last_position_sec == 300.0
    assert _activity(store, "dev-1", clock).total_watched_sec == 300.0


def test_only_the_positive_delta_reaches_daily_activity(
    engine: ProgressEngine, store: InMemoryStore, clock: FakeClock
) -> None:
    watch(engine, "dev-1", "1-1", watched=100.0)
    watch(engine, "dev-1", "1-1", watched=160.0)
    watch(engine, "dev-1", "1-1", watched=140.0)
    assert _activity(store, "dev-1", clock).total_watched_sec == 160.0


def test_activity_is_bucketed_by_reported_day(
    engine: ProgressEngine, store: InMemoryStore, clock: FakeClock
) -> None:
    yesterday = clock() - timedelta(days=1)
    watch(engine, "dev-1", "1-1", watched=100.0, at=yesterday)
    with store.begin() as tx:
        assert tx.progress.get_activity("dev-1", yesterday.date()) is not None
        assert tx.progress.get_activity("dev-1", clock.today) is None


# ---- completion ----


def test_completed_hint_is_sticky(engine: ProgressEngine, store: InMemoryStore) -> None:
    first = watch(engine, "dev-1", "1-1", watched=100.0, completed=True)
    assert first.just_completed is True
    later = watch(engine, "dev-1", "1-1", watched=110.0, completed=False)
    assert later.completed is True
    assert later.just_completed is False


def test_completion_by_threshold_counts_once(
    engine: ProgressEngine, store: InMemoryStore, clock: FakeClock
) -> None:
    before = _get_sample("progress_updates_total", {"result": "completed"})
    watch(engine, "dev-1", "1-1", watched=520.0, position=100.0)
    watch(engine, "dev-1", "1-1", watched=530.0, position=110.0)
    after = _get_sample("progress_updates_total", {"result": "completed"})

    assert after - before == 1
    assert _activity(store, "dev-1", clock).videos_completed == 1


def test_bound_device_completing_a_course_gets_one_certificate(
    engine: ProgressEngine,
) -> None:
    setup = onboard(engine)
    engine.join_class("dev-1", CLASS_CODE, "Sam", "Lee")

    first = watch(engine, "dev-1", "4-1", watched=600.0)
    second = watch(engine, "dev-1", "4-2", watched=600.0)
    replay = watch(engine, "dev-1", "4-2", watched=600.0)

    assert first.certificate is None
    assert second.certificate is not None
    assert second.certificate.course_id == "course-ev-charging"
    assert replay.certificate is None
    assert engine.get_certificates(setup.teacher.teacher_id).summary.total == 1


# ---- rejection ----


def test_invalid_duration_is_rejected_and_stores_nothing(
    engine: ProgressEngine, store: InMemoryStore
) -> None:
    before = _get_sample("progress_updates_total", {"result": "rejected"})
    with pytest.raises(InvalidDuration):
        watch(engine, "dev-1", "1-1", watched=10.0, duration=0.0)
    after = _get_sample("progress_updates_total", {"result": "rejected"})

    assert after - before == 1
    assert _video(store, "dev-1", "1-1") is None
    # the auto-registration rolled back with the rest of the update
    assert engine.devices.get_device("dev-1") is None


@pytest.mark.parametrize("duration", [float("inf"), float("nan"), -1.0])
def test_non_finite_duration_never_reaches_the_store(
    engine: ProgressEngine, store: InMemoryStore, duration: float
) -> None:
    watch(engine, "dev-1", "1-1", watched=60.0)
    with pytest.raises(InvalidDuration):
        watch(engine, "dev-1", "1-1", watched=120.0, duration=duration)

    assert _video(store, "dev-1", "1-1").duration_sec == 600.0
    result = watch(engine, "dev-1", "1-1", watched=600.0)
    assert result.completed is True
    assert result.progress_percentage == 100


@pytest.mark.parametrize(("position", "watched"), [(float("nan"), 60.0), (30.0, float("inf"))])
def test_non_finite_positions_are_rejected(
    engine: ProgressEngine, store: InMemoryStore, position: float, watched: float
) -> None:
    with pytest.raises(ValidationError, match="finite"):
        engine.update_video_progress("dev-1", "1-1", "", position, watched, 600.0)
    assert _video(store, "dev-1", "1-1") is None


def test_missing_ids_are_rejected(engine: ProgressEngine) -> None:
    with pytest.raises(ValidationError, match="device_id"):
        watch(engine, " ", "1-1", watched=10.0)
    with pytest.raises(ValidationError, match="video_id"):
        watch(engine, "dev-1", "", watched=10.0)


# ---- batches ----


def test_sync_batch_reports_per_item_errors(
    engine: ProgressEngine, store: InMemoryStore
) -> None:
    items = [
        ProgressUpdate("1-1", "course_1", 60.0, 60.0, 600.0),
        ProgressUpdate("1-2", "course_1", 0.0, 0.0, 0.0),
        ProgressUpdate("1-3", "course_1", 600.0, 600.0, 600.0),
    ]
    results = engine.sync_batch("dev-1", items)

    assert [r.accepted for r in results] == [True, False, True]
    assert [r.index for r in results] == [0, 1, 2]
    assert "duration" in results[1].error
    assert results[2].result.completed is True
    assert _video(store, "dev-1", "1-3") is not None


def test_update_invalidates_the_cached_summary(engine: ProgressEngine) -> None:
    onboard(engine)
    result = engine.join_class("dev-1", CLASS_CODE, "Sam", "Lee")

    assert engine.get_student_summary(result.student_id)["videos_completed"] == 0
    watch(engine, "dev-1", "1-1", watched=600.0)
    assert engine.get_student_summary(result.student_id)["videos_completed"] == 1


# ---- concurrent first writes ----


def test_losing_a_first_write_race_retries_as_a_merge(
    engine: ProgressEngine, store: InMemoryStore, clock: FakeClock
) -> None:
    watch(engine, "dev-1", "1-1", watched=200.0)
    racing = StaleFirstRead(store, "progress", "get_video", "get_activity")
    ingestion = ProgressIngestion(racing, engine.cache, engine.certificates, clock=clock)

    result = ingestion.update_video_progress("dev-1", "1-1", "", 300.0, 300.0, 600.0)

    assert racing.stale_reads == 0
    assert result.record.watched_sec == 300.0
    assert result.accepted_delta == 100.0
    activity = _activity(store, "dev-1", clock)
    assert activity.total_watched_sec == 300.0
    assert activity.videos_started == 1
