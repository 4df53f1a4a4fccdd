"""
Sync Service: feeds the reconciler from the realtime detection feed.

Architecture:
    EventSource.recent(N) ──► backfill_recent() ─┐
                                                  ├─► EventReconciler.reconcile_with_retry()
    EventSource.subscribe() ─► live sync task ────┘          (one event at a time)

Backfill runs once at startup over the newest N records. The live loop is a
single asyncio task that reconciles each event to completion (commit
included) before taking the next one. Neither lets a single bad event stop
it: validation failures are dropped, store failures are retried and then
logged. Only a fatal subscription error (credentials rejected) ends the
live loop on its own.

Reconciliation uses the synchronous SQLAlchemy session, so each event runs
in a worker thread. Stopping the loop cancels the poll wait immediately but
lets an event already in a worker thread finish its transaction.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from app.core.errors import AppError, ValidationError
from app.core.metrics import record_sync_event
from app.core.retry import RETRY_FEED_FETCH, retry_async
from app.services.event_source import EventSource, RawEvent, get_event_source
from app.services.reconciler import EventReconciler, ReconcileResult, get_reconciler
from app.services.stats_service import StatsService, get_stats_service

logger = logging.getLogger(__name__)


@dataclass
class EventFailure:
    event_id: str
    error_type: str
    message: str


@dataclass
class BackfillReport:
    """Summary of one backfill batch."""
    fetched: int = 0
    reconciled: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: List[EventFailure] = field(default_factory=list)
    # Newest feed timestamp in the batch; live sync resumes from here
    watermark: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "fetched": self.fetched,
            "reconciled": self.reconciled,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "errors": [e.__dict__ for e in self.errors],
            "watermark": self.watermark,
        }


@dataclass
class LiveSyncStats:
    processed: int = 0
    duplicates: int = 0
    failed: int = 0
    last_event_at: Optional[float] = None


class SyncService:
    """
    Owns the backfill runner and the live sync loop.

    Args:
        source: Detection feed adapter
        reconciler: Event reconciler
        stats_service: Used to drop cached reports touched by new detections
    """

    def __init__(
        self,
        source: Optional[EventSource] = None,
        reconciler: Optional[EventReconciler] = None,
        stats_service: Optional[StatsService] = None,
    ):
        self.source = source or get_event_source()
        self.reconciler = reconciler or get_reconciler()
        self.stats_service = stats_service or get_stats_service()
        self.live_stats = LiveSyncStats()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _reconcile(self, event: RawEvent, source: str) -> ReconcileResult:
        """Reconcile with retries and record metrics; errors propagate."""
        started = time.perf_counter()
        try:
            result = self.reconciler.reconcile_with_retry(event)
        except ValidationError:
            record_sync_event(source, "invalid")
            raise
        except Exception:
            record_sync_event(source, "failed")
            raise

        record_sync_event(source, result.outcome, time.perf_counter() - started)
        for timestamp in result.affected_timestamps:
            self.stats_service.invalidate_day(result.organization_id, timestamp)
        return result

    async def backfill_recent(self, limit: int, path: Optional[str] = None) -> BackfillReport:
        """
        Reconcile the newest `limit` feed records, best effort.

        Per-event errors are collected in the report and logged; the batch
        always runs to the end. Re-running is safe: already stored events
        come back as duplicates.

        Raises:
            Exception: Fetching the batch itself failed after retries
        """
        report = BackfillReport()
        events = await retry_async(
            self.source.recent,
            limit,
            path,
            config=RETRY_FEED_FETCH,
            operation_name="feed_recent",
        )
        report.fetched = len(events)
        if events:
            report.watermark = max(event.timestamp for event in events)

        logger.info(
            f"Backfill started with {len(events)} events",
            extra={"event_type": "backfill_start", "limit": limit, "fetched": len(events)}
        )

        for event in events:
            try:
                result = await asyncio.to_thread(self._reconcile, event, "backfill")
            except Exception as e:
                report.failed += 1
                report.errors.append(EventFailure(
                    event_id=event.id,
                    error_type=type(e).__name__,
                    message=e.message if isinstance(e, AppError) else str(e),
                ))
                logger.warning(
                    f"Backfill skipped event {event.id}: {e}",
                    extra={
                        "event_type": "backfill_event_failed",
                        "event_id": event.id,
                        "error_type": type(e).__name__,
                    },
                    exc_info=not isinstance(e, AppError),
                )
                continue

            if result.duplicate:
                report.duplicates += 1
            else:
                report.reconciled += 1

        logger.info(
            f"Backfill complete: {report.reconciled} reconciled, "
            f"{report.duplicates} duplicates, {report.failed} failed",
            extra={
                "event_type": "backfill_complete",
                "fetched": report.fetched,
                "reconciled": report.reconciled,
                "duplicates": report.duplicates,
                "failed": report.failed,
                "watermark": report.watermark,
            }
        )
        return report

    def start_live_sync(self, path: Optional[str] = None, watermark: float = 0.0) -> asyncio.Task:
        """
        Start the live sync loop as a background task.

        Args:
            path: Feed node to follow (defaults to the source's logs path)
            watermark: Only events at or after this timestamp are delivered

        Returns:
            The running task (the same one if already started)
        """
        if self.is_running:
            logger.warning("Live sync already running")
            return self._task

        self.live_stats = LiveSyncStats()
        self._task = asyncio.create_task(self._run(path, watermark), name="live-sync")
        logger.info(
            "Live sync started",
            extra={
                "event_type": "live_sync_start",
                "path": path or self.source.logs_path,
                "watermark": watermark,
            }
        )
        return self._task

    async def stop(self, timeout: float = 10.0) -> None:
        """
        Cancel the live loop and wait for it to wind down.

        An event already being reconciled is allowed to commit first.
        """
        if self._task is None:
            return

        task = self._task
        if not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(
                    asyncio.gather(task, return_exceptions=True),
                    timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Live sync did not stop within {timeout}s",
                    extra={"event_type": "live_sync_stop_timeout"}
                )

        self._task = None
        logger.info(
            "Live sync stopped",
            extra={
                "event_type": "live_sync_stopped",
                "processed": self.live_stats.processed,
                "duplicates": self.live_stats.duplicates,
                "failed": self.live_stats.failed,
            }
        )

    async def _run(self, path: Optional[str], watermark: float) -> None:
        subscription = self.source.subscribe(watermark, path=path)
        try:
            async for event in subscription:
                await self._handle_live_event(event)
            logger.info("Detection feed subscription ended", extra={"event_type": "live_sync_feed_closed"})
        except asyncio.CancelledError:
            logger.debug("Live sync cancelled")
            raise
        except Exception as e:
            logger.error(
                f"Live sync stopped by feed failure: {e}",
                extra={"event_type": "live_sync_fatal", "error_type": type(e).__name__},
                exc_info=True,
            )
        finally:
            await subscription.aclose()

    async def _handle_live_event(self, event: RawEvent) -> None:
        in_flight = asyncio.ensure_future(asyncio.to_thread(self._reconcile, event, "live"))
        try:
            await asyncio.shield(in_flight)
        except asyncio.CancelledError:
            # Let the worker thread finish this event's transaction
            await asyncio.gather(in_flight, return_exceptions=True)
            raise
        except ValidationError as e:
            self.live_stats.failed += 1
            logger.warning(
                f"Dropping invalid event {event.id}: {e.message}",
                extra={"event_type": "live_event_invalid", "event_id": event.id, "field": e.field}
            )
            return
        except Exception as e:
            self.live_stats.failed += 1
            logger.error(
                f"Failed to reconcile event {event.id}: {e}",
                extra={
                    "event_type": "live_event_failed",
                    "event_id": event.id,
                    "error_type": type(e).__name__,
                },
                exc_info=not isinstance(e, AppError),
            )
            return

        result = in_flight.result()
        self.live_stats.last_event_at = event.timestamp
        if result.duplicate:
            self.live_stats.duplicates += 1
        else:
            self.live_stats.processed += 1


_sync_service: Optional[SyncService] = None


def get_sync_service() -> Optional[SyncService]:
    """Get the global SyncService (None until initialized)."""
    return _sync_service


def initialize_sync_service(source: Optional[EventSource] = None) -> SyncService:
    """Create the global SyncService. Called from the FastAPI lifespan."""
    global _sync_service
    if _sync_service is None:
        _sync_service = SyncService(source=source)
    return _sync_service


async def shutdown_sync_service(timeout: float = 10.0) -> None:
    """Stop and drop the global SyncService."""
    global _sync_service
    if _sync_service is None:
        return
    await _sync_service.stop(timeout=timeout)
    _sync_service = None
