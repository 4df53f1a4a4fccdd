"""Tests for the backfill runner and the live sync loop"""
import asyncio
import threading
from typing import List
from unittest.mock import MagicMock

import pytest

from app.core.errors import TransientStoreError, ValidationError
from app.models.person_log import PersonLog
from app.services.event_source import EventSource, RawEvent
from app.services.reconciler import EventReconciler, ReconcileResult
from app.services.sync_service import SyncService
from tests.conftest import T0_UNIX, make_camera, make_event, make_organization


class FakeEventSource(EventSource):
    """In-memory feed: recent() returns a fixed list, subscribe() drains a queue."""

    logs_path = "logs"

    def __init__(self, events: List[RawEvent] = None):
        self.events = list(events or [])
        self.queue: asyncio.Queue = None
        self.recent_calls = []
        self.closed = False

    async def recent(self, limit, path=None):
        self.recent_calls.append((limit, path))
        return self.events[-limit:]

    async def subscribe(self, watermark=0.0, path=None):
        self.queue = asyncio.Queue()
        for event in self.events:
            if event.timestamp >= watermark:
                await self.queue.put(event)
        try:
            while True:
                yield await self.queue.get()
        finally:
            self.closed = True


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def stats_service():
    return MagicMock()


@pytest.fixture
def camera(db_session):
    org = make_organization(db_session=db_session)
    return make_camera(db_session=db_session, organization_id=org.id)


@pytest.fixture
def reconciler(session_factory):
    return EventReconciler(session_factory=session_factory)


class TestBackfill:
    @pytest.mark.asyncio
    async def test_backfill_reconciles_and_reports(self, reconciler, stats_service, db_session, camera):
        events = [make_event(timestamp=T0_UNIX + i, camera_id=camera.id, person_hash=f"p{i % 2}") for i in range(4)]
        source = FakeEventSource(events)
        service = SyncService(source=source, reconciler=reconciler, stats_service=stats_service)

        report = await service.backfill_recent(1000)

        assert source.recent_calls == [(1000, None)]
        assert report.fetched == 4
        assert report.reconciled == 4
        assert report.failed == 0
        assert db_session.query(PersonLog).count() == 4
        assert stats_service.invalidate_day.call_count == 4

    @pytest.mark.asyncio
    async def test_rerun_counts_duplicates(self, reconciler, stats_service, db_session, camera):
        events = [make_event(timestamp=T0_UNIX + i, camera_id=camera.id) for i in range(3)]
        service = SyncService(source=FakeEventSource(events), reconciler=reconciler, stats_service=stats_service)

        await service.backfill_recent(10)
        report = await service.backfill_recent(10)

        assert report.reconciled == 0
        assert report.duplicates == 3
        assert db_session.query(PersonLog).count() == 3

    @pytest.mark.asyncio
    async def test_report_carries_newest_timestamp(self, reconciler, stats_service, camera):
        events = [make_event(timestamp=T0_UNIX + offset, camera_id=camera.id) for offset in (40, 90, 10)]
        service = SyncService(source=FakeEventSource(events), reconciler=reconciler, stats_service=stats_service)

        report = await service.backfill_recent(10)

        assert report.watermark == T0_UNIX + 90
        assert report.to_dict()["watermark"] == T0_UNIX + 90

    @pytest.mark.asyncio
    async def test_empty_feed_has_no_watermark(self, reconciler, stats_service):
        service = SyncService(source=FakeEventSource([]), reconciler=reconciler, stats_service=stats_service)

        report = await service.backfill_recent(10)

        assert report.watermark is None

    @pytest.mark.asyncio
    async def test_live_sync_from_backfill_watermark_skips_older_events(self, stats_service):
        reconciler = MagicMock()
        reconciler.reconcile_with_retry.side_effect = lambda e: ReconcileResult(event_id=e.id, organization_id="o")
        backfilled = [make_event(id=f"b{i}", timestamp=T0_UNIX + i) for i in range(3)]
        source = FakeEventSource(backfilled)
        service = SyncService(source=source, reconciler=reconciler, stats_service=stats_service)

        report = await service.backfill_recent(3)
        reconciler.reconcile_with_retry.reset_mock()
        source.events = [make_event(id="older", timestamp=T0_UNIX - 100)] + backfilled[-1:] + [
            make_event(id="fresh", timestamp=T0_UNIX + 10)
        ]

        service.start_live_sync(watermark=report.watermark)
        await _wait_for(lambda: service.live_stats.processed == 2)
        await service.stop(timeout=1.0)

        handled = [c.args[0].id for c in reconciler.reconcile_with_retry.call_args_list]
        assert handled == ["b2", "fresh"]

    @pytest.mark.asyncio
    async def test_late_first_sighting_invalidates_both_days(self, reconciler, stats_service, camera):
        day = 24 * 3600
        events = [
            make_event(timestamp=T0_UNIX + day, camera_id=camera.id, person_hash="p1"),
            make_event(timestamp=T0_UNIX, camera_id=camera.id, person_hash="p1"),
        ]
        service = SyncService(source=FakeEventSource(events), reconciler=reconciler, stats_service=stats_service)

        await service.backfill_recent(10)

        invalidated = [
            call.args[1].strftime("%Y-%m-%d") for call in stats_service.invalidate_day.call_args_list
        ]
        assert invalidated == ["2023-11-15", "2023-11-14", "2023-11-15"]

    @pytest.mark.asyncio
    async def test_failing_event_does_not_abort_batch(self, stats_service):
        events = [make_event(timestamp=T0_UNIX + i, id=f"e{i}") for i in range(3)]

        reconciler = MagicMock()

        def reconcile(event):
            if event.id == "e1":
                raise TransientStoreError("database is locked")
            return ReconcileResult(event_id=event.id, organization_id="org", duplicate=False)

        reconciler.reconcile_with_retry.side_effect = reconcile
        service = SyncService(source=FakeEventSource(events), reconciler=reconciler, stats_service=stats_service)

        report = await service.backfill_recent(3)

        assert report.reconciled == 2
        assert report.failed == 1
        assert report.errors[0].event_id == "e1"
        assert report.errors[0].error_type == "TransientStoreError"
        assert reconciler.reconcile_with_retry.call_count == 3

    @pytest.mark.asyncio
    async def test_feed_failure_propagates(self, stats_service):
        source = FakeEventSource()
        source.recent = MagicMock(side_effect=RuntimeError("feed unavailable"))
        service = SyncService(source=source, reconciler=MagicMock(), stats_service=stats_service)

        with pytest.raises(RuntimeError):
            await service.backfill_recent(5)


class TestLiveSync:
    @pytest.mark.asyncio
    async def test_processes_events_in_order(self, reconciler, stats_service, db_session, camera):
        events = [make_event(timestamp=T0_UNIX + i, camera_id=camera.id) for i in range(3)]
        source = FakeEventSource(events)
        service = SyncService(source=source, reconciler=reconciler, stats_service=stats_service)

        service.start_live_sync()
        await _wait_for(lambda: service.live_stats.processed == 3)
        await service.stop(timeout=2.0)

        assert service.is_running is False
        assert source.closed is True
        assert db_session.query(PersonLog).count() == 3
        assert service.live_stats.last_event_at == T0_UNIX + 2

    @pytest.mark.asyncio
    async def test_bad_event_is_skipped(self, stats_service):
        reconciler = MagicMock()

        def reconcile(event):
            if event.id == "bad":
                raise ValidationError("person_hash is required", field="person_hash")
            if event.id == "broken":
                raise RuntimeError("unexpected")
            return ReconcileResult(event_id=event.id, organization_id="org")

        reconciler.reconcile_with_retry.side_effect = reconcile
        events = [
            make_event(id="bad", timestamp=T0_UNIX),
            make_event(id="broken", timestamp=T0_UNIX + 1),
            make_event(id="good", timestamp=T0_UNIX + 2),
        ]
        service = SyncService(source=FakeEventSource(events), reconciler=reconciler, stats_service=stats_service)

        service.start_live_sync()
        await _wait_for(lambda: service.live_stats.processed == 1)
        await service.stop(timeout=2.0)

        assert service.live_stats.failed == 2

    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_event_commit(self, stats_service):
        started = threading.Event()
        release = threading.Event()
        finished = []

        reconciler = MagicMock()

        def slow_reconcile(event):
            started.set()
            release.wait(timeout=2.0)
            finished.append(event.id)
            return ReconcileResult(event_id=event.id, organization_id="org")

        reconciler.reconcile_with_retry.side_effect = slow_reconcile
        service = SyncService(
            source=FakeEventSource([make_event(id="slow")]),
            reconciler=reconciler,
            stats_service=stats_service,
        )

        service.start_live_sync()
        await _wait_for(started.is_set)

        stop_task = asyncio.create_task(service.stop(timeout=3.0))
        await asyncio.sleep(0.05)
        release.set()
        await stop_task

        assert finished == ["slow"]
        assert service.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_returns_same_task(self, stats_service):
        service = SyncService(source=FakeEventSource(), reconciler=MagicMock(), stats_service=stats_service)

        first = service.start_live_sync()
        second = service.start_live_sync()

        assert first is second
        await service.stop(timeout=1.0)

    @pytest.mark.asyncio
    async def test_watermark_passed_to_source(self, stats_service):
        reconciler = MagicMock()
        reconciler.reconcile_with_retry.side_effect = lambda e: ReconcileResult(event_id=e.id, organization_id="o")
        events = [make_event(id="old", timestamp=T0_UNIX), make_event(id="new", timestamp=T0_UNIX + 60)]
        service = SyncService(source=FakeEventSource(events), reconciler=reconciler, stats_service=stats_service)

        service.start_live_sync(watermark=T0_UNIX + 30)
        await _wait_for(lambda: service.live_stats.processed == 1)
        await service.stop(timeout=1.0)

        handled = [c.args[0].id for c in reconciler.reconcile_with_retry.call_args_list]
        assert handled == ["new"]
