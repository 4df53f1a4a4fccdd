"""
Sync API endpoints

- POST /sync/backfill - Reconcile the newest feed records now
- POST /sync/events - Reconcile one detection submitted over HTTP
"""
import asyncio
import logging
import time
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_organization_id, http_error
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import AppError, ValidationError
from app.core.metrics import record_sync_event
from app.schemas.sync import BackfillResponse, DetectionEventCreate, ReconcileResponse
from app.services.camera_service import get_camera_service
from app.services.event_source import RawEvent, get_event_source
from app.services.reconciler import get_reconciler
from app.services.stats_service import get_stats_service
from app.services.sync_service import get_sync_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/backfill", response_model=BackfillResponse)
async def run_backfill(
    limit: int = Query(None, ge=1, le=10000, description="Records to fetch (default SYNC_BACKFILL_LIMIT)"),
    organization_id: str = Depends(get_current_organization_id),
):
    """
    Reconcile the newest `limit` feed records

    Safe to repeat: records already stored are counted as duplicates.

    Raises:
        HTTPException: 503 if the feed is not configured or cannot be read
    """
    sync_service = get_sync_service()
    if sync_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Detection feed sync is not configured"
        )

    try:
        report = await sync_service.backfill_recent(limit or settings.SYNC_BACKFILL_LIMIT)
    except Exception as e:
        logger.error(
            f"On-demand backfill failed: {e}",
            extra={"event_type": "backfill_failed", "organization_id": organization_id},
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Detection feed unavailable"
        )
    return report.to_dict()


@router.post("/events", response_model=ReconcileResponse)
async def submit_event(
    data: DetectionEventCreate,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """
    Reconcile one detection event

    Returns 200 for a duplicate as well (duplicate=true); nothing is written twice.
    With publish=true the event is also written to the realtime feed.

    Raises:
        HTTPException: 400 invalid event, 404 camera not in the caller organization,
            503 store or feed failure
    """
    event = RawEvent(
        id=data.id or str(uuid.uuid4()),
        timestamp=data.timestamp,
        person_hash=data.person_hash,
        camera_id=data.camera_id,
    )

    started = time.perf_counter()
    try:
        event.validate()
        # Callers may only report detections from their own cameras
        get_camera_service().get(db, event.camera_id, organization_id)
        result = await asyncio.to_thread(get_reconciler().reconcile, event, db)
    except ValidationError as e:
        record_sync_event("api", "invalid")
        raise http_error(e)
    except AppError as e:
        record_sync_event("api", "failed")
        raise http_error(e)

    record_sync_event("api", result.outcome, time.perf_counter() - started)
    for timestamp in result.affected_timestamps:
        get_stats_service().invalidate_day(result.organization_id, timestamp)

    if data.publish:
        if not settings.firebase_ready:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Detection feed is not configured"
            )
        try:
            await get_event_source().publish(event)
        except Exception as e:
            logger.error(
                f"Failed to publish event {event.id}: {e}",
                extra={"event_type": "feed_publish_failed", "event_id": event.id},
                exc_info=True,
            )
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Event stored but could not be published"
            )

    return {
        "event_id": result.event_id,
        "organization_id": result.organization_id,
        "timestamp": result.timestamp,
        "duplicate": result.duplicate,
        "is_new_person": result.is_new_person,
        "person_created": result.person_created,
        "log_id": result.log_id,
        "used_default_organization": result.used_default_organization,
    }
