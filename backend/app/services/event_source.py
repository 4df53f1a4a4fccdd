"""
Detection Event Source

Adapter over the Firebase Realtime Database node where edge devices push
person-detection records:

    logs/
      <push-id>: {"timestamp": 1718000000, "person_hash": "ab12...", "camera_id": "<uuid>"}

Generic payloads are turned into typed RawEvent records here, at the
boundary; anything malformed is logged and dropped before it reaches the
reconciler.

Two read modes:
- recent(limit): newest `limit` records, one shot (startup backfill)
- subscribe(watermark): async iterator polling every FIREBASE_POLL_INTERVAL
  seconds for records at or after the watermark. Delivery is at least once;
  the dedup key in the reconciler absorbs repeats.

The SDK is blocking, so every call runs in a worker thread.
"""
import asyncio
import logging
import math
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple

from firebase_admin import db as firebase_db
from firebase_admin import exceptions as firebase_exceptions

from app.core.config import settings
from app.core.errors import ValidationError
from app.core.firebase import get_firebase_app
from app.core.logging_config import sanitize_log_value
from app.core.metrics import record_feed_error, record_watermark

logger = logging.getLogger(__name__)

# Feed errors that retrying will not fix; they end the subscription
FATAL_FEED_ERRORS = (
    firebase_exceptions.UnauthenticatedError,
    firebase_exceptions.PermissionDeniedError,
)


@dataclass(frozen=True)
class RawEvent:
    """
    One detection record from the feed.

    Attributes:
        id: Opaque external id (the feed key unless the payload carries one)
        timestamp: Unix seconds
        person_hash: Person identifier
        camera_id: Camera that produced the detection
    """

    id: str
    timestamp: float
    person_hash: str
    camera_id: str

    def validate(self) -> "RawEvent":
        """
        Check required fields.

        Raises:
            ValidationError: A field is missing, empty or of the wrong type
        """
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, (int, float)):
            raise ValidationError("timestamp must be a number", field="timestamp")
        if not math.isfinite(self.timestamp) or self.timestamp < 0:
            raise ValidationError("timestamp must be a non-negative finite number", field="timestamp")
        if not isinstance(self.person_hash, str) or not self.person_hash.strip():
            raise ValidationError("person_hash is required", field="person_hash")
        if not isinstance(self.camera_id, str) or not self.camera_id.strip():
            raise ValidationError("camera_id is required", field="camera_id")
        return self

    @classmethod
    def from_payload(cls, key: Optional[str], payload: Any) -> "RawEvent":
        """
        Build a validated event from a feed payload.

        Raises:
            ValidationError: The payload is not an object or fails validate()
        """
        if not isinstance(payload, dict):
            raise ValidationError("event payload must be an object")

        event_id = payload.get("id") or key or str(uuid.uuid4())
        return cls(
            id=str(event_id),
            timestamp=payload.get("timestamp"),
            person_hash=payload.get("person_hash"),
            camera_id=payload.get("camera_id"),
        ).validate()


def _iter_records(snapshot: Any) -> Iterable[Tuple[Optional[str], Any]]:
    """Normalize a query result (dict, list or None) to (key, payload) pairs."""
    if not snapshot:
        return []
    if isinstance(snapshot, dict):
        return list(snapshot.items())
    if isinstance(snapshot, list):
        # Sequential integer keys come back as a sparse list
        return [(str(index), item) for index, item in enumerate(snapshot) if item is not None]
    return []


def _numeric_timestamp(payload: Any) -> Optional[float]:
    if not isinstance(payload, dict):
        return None
    ts = payload.get("timestamp")
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return None
    return float(ts)


def parse_records(snapshot: Any) -> List[RawEvent]:
    """Parse a query result, dropping malformed records, sorted by timestamp."""
    events = []
    for key, payload in _iter_records(snapshot):
        try:
            events.append(RawEvent.from_payload(key, payload))
        except ValidationError as e:
            logger.warning(
                f"Dropping malformed detection record {sanitize_log_value(key)}: {e.message}",
                extra={
                    "event_type": "feed_record_invalid",
                    "record_key": sanitize_log_value(key),
                    "field": e.field,
                }
            )
    events.sort(key=lambda event: event.timestamp)
    return events


class EventSource(ABC):
    """Contract the sync pipeline consumes."""

    logs_path: str

    @abstractmethod
    async def recent(self, limit: int, path: Optional[str] = None) -> List[RawEvent]:
        """Return up to `limit` of the newest events."""

    @abstractmethod
    def subscribe(self, watermark: float = 0.0, path: Optional[str] = None) -> AsyncIterator[RawEvent]:
        """Yield events newer than the watermark until cancelled."""


class FirebaseEventSource(EventSource):
    """
    Realtime Database implementation of EventSource.

    Args:
        logs_path: Database node holding detection records
        poll_interval: Seconds between polls in subscribe()
        app: Firebase app (defaults to the shared application app)
    """

    def __init__(
        self,
        logs_path: Optional[str] = None,
        poll_interval: Optional[float] = None,
        app=None,
    ):
        self.logs_path = logs_path or settings.FIREBASE_LOGS_PATH
        self.poll_interval = poll_interval or settings.FIREBASE_POLL_INTERVAL
        self._app = app
        self.watermark: float = 0.0

    def _reference(self, path: Optional[str] = None):
        if self._app is None:
            self._app = get_firebase_app()
        return firebase_db.reference(path or self.logs_path, app=self._app)

    def _fetch_recent(self, limit: int, path: Optional[str]) -> Any:
        return self._reference(path).order_by_child("timestamp").limit_to_last(limit).get()

    def _fetch_since(self, watermark: float, path: Optional[str]) -> Any:
        return self._reference(path).order_by_child("timestamp").start_at(watermark).get()

    async def recent(self, limit: int, path: Optional[str] = None) -> List[RawEvent]:
        if limit <= 0:
            return []
        snapshot = await asyncio.to_thread(self._fetch_recent, limit, path)
        events = parse_records(snapshot)
        logger.info(
            f"Fetched {len(events)} recent detection records",
            extra={
                "event_type": "feed_recent_fetched",
                "path": path or self.logs_path,
                "limit": limit,
                "count": len(events),
            }
        )
        return events

    async def subscribe(self, watermark: float = 0.0, path: Optional[str] = None) -> AsyncIterator[RawEvent]:
        """
        Poll for records with timestamp >= watermark.

        Records sitting exactly on the watermark are re-read on every poll
        (several may share a second), so their keys are remembered and
        skipped. The watermark only advances after a successful fetch.

        Raises:
            firebase_admin.exceptions.UnauthenticatedError / PermissionDeniedError:
                credentials were rejected; the subscription cannot recover
        """
        self.watermark = watermark
        seen_at_watermark: Set[str] = set()

        while True:
            try:
                snapshot = await asyncio.to_thread(self._fetch_since, self.watermark, path)
            except FATAL_FEED_ERRORS:
                raise
            except Exception as e:
                record_feed_error()
                logger.error(
                    f"Polling detection feed failed: {e}",
                    extra={
                        "event_type": "feed_poll_error",
                        "path": path or self.logs_path,
                        "watermark": self.watermark,
                        "error_type": type(e).__name__,
                    }
                )
            else:
                events = [
                    event for event in parse_records(snapshot)
                    if not (event.timestamp == self.watermark and event.id in seen_at_watermark)
                ]

                # Malformed records still move the watermark past themselves
                timestamps = [_numeric_timestamp(payload) for _, payload in _iter_records(snapshot)]
                newest = max((ts for ts in timestamps if ts is not None), default=None)
                if newest is not None and newest > self.watermark:
                    self.watermark = newest
                    seen_at_watermark = set()
                    record_watermark(newest)
                seen_at_watermark.update(
                    event.id for event in events if event.timestamp == self.watermark
                )

                for event in events:
                    yield event

            await asyncio.sleep(self.poll_interval)

    async def publish(self, event: RawEvent, path: Optional[str] = None) -> None:
        """Write a detection record to the feed under its id."""
        event.validate()
        record = {
            "timestamp": int(event.timestamp),
            "person_hash": event.person_hash,
            "camera_id": event.camera_id,
        }
        await asyncio.to_thread(self._reference(path).child(event.id).set, record)
        logger.info(
            f"Published detection {event.id} to feed",
            extra={"event_type": "feed_record_published", "event_id": event.id}
        )


_event_source: Optional[FirebaseEventSource] = None


def get_event_source() -> FirebaseEventSource:
    """Get the application-wide feed adapter."""
    global _event_source
    if _event_source is None:
        _event_source = FirebaseEventSource()
    return _event_source
