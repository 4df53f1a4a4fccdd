"""
Event Reconciler

Turns one RawEvent into durable, deduplicated, classified state:

    1. validate the event (ValidationError: dropped, never retried)
    2. resolve the organization from the camera; unknown cameras fall back
       to the default organization (degraded mode, logged)
    3. dedup on (person_hash, camera_id, timestamp); a hit is a successful no-op
    4. is_new_person = no earlier detection of the hash in the organization;
       a late earlier detection clears the flag on the rows after it
    5. insert the PersonLog row
    6. PersonLedger.create_if_absent, then record_visit if the person existed

Steps 3-6 run in one transaction. A store failure anywhere rolls the whole
event back and surfaces as TransientStoreError so the caller can retry; the
log row never commits without its Person update.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db_session
from app.core.errors import NotFoundError, TransientStoreError, log_degraded
from app.core.retry import RETRY_DB_OPERATION, retry_sync
from app.models.camera import Camera
from app.models.organization import Organization
from app.models.person_log import PersonLog
from app.services.event_source import RawEvent
from app.services.person_ledger import PersonLedger, get_person_ledger

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of reconciling one event."""

    event_id: str
    organization_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    duplicate: bool = False
    is_new_person: bool = False
    person_created: bool = False
    log_id: Optional[str] = None
    used_default_organization: bool = False
    # Timestamps of later rows that lost their is_new_person flag
    demoted: List[datetime] = field(default_factory=list)

    @property
    def outcome(self) -> str:
        return "duplicate" if self.duplicate else "reconciled"

    @property
    def affected_timestamps(self) -> List[datetime]:
        """Detection times whose daily reports changed."""
        if self.duplicate or self.timestamp is None:
            return []
        return [self.timestamp] + self.demoted


def event_time(timestamp: float) -> datetime:
    """Unix seconds to an aware UTC datetime, truncated to whole seconds."""
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


class EventReconciler:
    """
    Reconciles detection events against the relational store.

    Args:
        session_factory: sessionmaker used when the caller does not supply a
            session (defaults to the application SessionLocal)
        ledger: Person ledger (defaults to the shared instance)
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        ledger: Optional[PersonLedger] = None,
    ):
        self._session_factory = session_factory
        self._ledger = ledger or get_person_ledger()

    def reconcile(self, event: RawEvent, db: Optional[Session] = None) -> ReconcileResult:
        """
        Reconcile one event and commit.

        Args:
            event: Detection event
            db: Session to use (API requests pass theirs); a new one is
                opened from the session factory otherwise

        Returns:
            ReconcileResult (duplicate=True for an already stored event)

        Raises:
            ValidationError: Event is malformed
            NotFoundError: No organization exists to attribute the event to
            TransientStoreError: The store failed; nothing was committed
        """
        event.validate()

        if db is not None:
            return self._reconcile_and_commit(db, event)

        with get_db_session(self._session_factory) as session:
            return self._reconcile_and_commit(session, event)

    def reconcile_with_retry(self, event: RawEvent) -> ReconcileResult:
        """reconcile() in its own session, retrying TransientStoreError with backoff."""
        return retry_sync(
            self.reconcile,
            event,
            config=RETRY_DB_OPERATION,
            operation_name="reconcile_event",
        )

    def _reconcile_and_commit(self, db: Session, event: RawEvent) -> ReconcileResult:
        started = time.perf_counter()
        try:
            result = self._reconcile_in_transaction(db, event)
            if result.duplicate:
                db.rollback()
            else:
                db.commit()
        except IntegrityError as e:
            db.rollback()
            # A concurrent writer stored the same detection between our
            # dedup check and the insert
            if self._is_duplicate(db, event, event_time(event.timestamp)):
                result = ReconcileResult(event_id=event.id, duplicate=True)
            else:
                raise TransientStoreError(f"Integrity error reconciling event {event.id}: {e.orig}") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientStoreError(f"Store error reconciling event {event.id}: {e}") from e
        except Exception:
            db.rollback()
            raise

        logger.debug(
            f"Event {event.id} {result.outcome}",
            extra={
                "event_type": f"event_{result.outcome}",
                "event_id": event.id,
                "person_hash": event.person_hash,
                "camera_id": event.camera_id,
                "organization_id": result.organization_id,
                "is_new_person": result.is_new_person,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            }
        )
        return result

    def _reconcile_in_transaction(self, db: Session, event: RawEvent) -> ReconcileResult:
        """
        Steps 2-6 inside the caller's transaction.

        is_new_person compares whole-second event times strictly: detections
        of one hash in the same second on different cameras are all first
        sightings, so a daily summary can count that person as new twice.
        """
        seen_at = event_time(event.timestamp)
        organization_id, used_default = self._resolve_organization(db, event)

        if self._is_duplicate(db, event, seen_at):
            return ReconcileResult(
                event_id=event.id,
                organization_id=organization_id,
                timestamp=seen_at,
                duplicate=True,
                used_default_organization=used_default,
            )

        earlier_exists = db.query(
            exists().where(
                PersonLog.person_hash == event.person_hash,
                PersonLog.organization_id == organization_id,
                PersonLog.timestamp < seen_at,
                PersonLog.is_live(),
            )
        ).scalar()
        is_new_person = not earlier_exists

        demoted = []
        if is_new_person:
            demoted = self._demote_later_first_sightings(db, event.person_hash, organization_id, seen_at)

        log = PersonLog(
            timestamp=seen_at,
            person_hash=event.person_hash,
            camera_id=event.camera_id,
            organization_id=organization_id,
            is_new_person=is_new_person,
        )
        db.add(log)
        db.flush()

        _, person_created = self._ledger.create_if_absent(
            db, event.person_hash, organization_id, seen_at
        )
        if not person_created:
            self._ledger.record_visit(db, event.person_hash, organization_id, seen_at)

        return ReconcileResult(
            event_id=event.id,
            organization_id=organization_id,
            timestamp=seen_at,
            is_new_person=is_new_person,
            person_created=person_created,
            log_id=log.id,
            used_default_organization=used_default,
            demoted=demoted,
        )

    def _demote_later_first_sightings(
        self, db: Session, person_hash: str, organization_id: str, seen_at: datetime
    ) -> List[datetime]:
        # An earlier detection arrived late: rows stored as the first
        # sighting no longer are
        query = db.query(PersonLog).filter(
            PersonLog.person_hash == person_hash,
            PersonLog.organization_id == organization_id,
            PersonLog.timestamp > seen_at,
            PersonLog.is_new_person.is_(True),
            PersonLog.is_live(),
        )
        timestamps = [row.timestamp for row in query.with_entities(PersonLog.timestamp)]
        if timestamps:
            query.update({PersonLog.is_new_person: False}, synchronize_session="fetch")
            logger.info(
                f"Late detection of {person_hash} reclassified {len(timestamps)} later log(s)",
                extra={
                    "event_type": "person_log_reclassified",
                    "person_hash": person_hash,
                    "organization_id": organization_id,
                    "count": len(timestamps),
                }
            )
        return timestamps

    def _is_duplicate(self, db: Session, event: RawEvent, seen_at: datetime) -> bool:
        # Soft-deleted rows count: the unique constraint covers them too
        return db.query(
            exists().where(
                PersonLog.person_hash == event.person_hash,
                PersonLog.camera_id == event.camera_id,
                PersonLog.timestamp == seen_at,
            )
        ).scalar()

    def _resolve_organization(self, db: Session, event: RawEvent):
        camera_org = db.query(Camera.organization_id).filter(
            Camera.id == event.camera_id,
            Camera.is_live(),
        ).scalar()
        if camera_org is not None:
            return camera_org, False

        default_org = db.query(Organization.id).filter(
            Organization.is_live()
        ).order_by(Organization.created_at.asc(), Organization.id.asc()).limit(1).scalar()
        if default_org is None:
            raise NotFoundError(
                f"Camera {event.camera_id} is unknown and no default organization exists"
            )

        log_degraded(
            logger,
            f"Camera {event.camera_id} not found, attributing event {event.id} to default organization",
            camera_id=event.camera_id,
            event_id=event.id,
            organization_id=default_org,
        )
        return default_org, True


_reconciler: Optional[EventReconciler] = None


def get_reconciler() -> EventReconciler:
    """Get the application-wide reconciler."""
    global _reconciler
    if _reconciler is None:
        _reconciler = EventReconciler()
    return _reconciler
