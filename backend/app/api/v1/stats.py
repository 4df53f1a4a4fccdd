"""
Reporting API endpoints

All reports cover one UTC day of the caller's organization (default: today):
- GET /summary - total / new / repeat detections
- GET /heatmap - detections per hour
- GET /person-stats - new vs repeat detections
- GET /logs - filtered, paginated detection log listing
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_organization_id, http_error
from app.core.database import get_db
from app.core.errors import AppError
from app.schemas.person import PersonLogListResponse
from app.schemas.stats import DailySummaryResponse, HeatmapResponse, PersonStatsResponse
from app.services.stats_service import LogFilter, get_stats_service, today

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stats"])


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes from the query string are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.get("/summary", response_model=DailySummaryResponse)
def get_summary(
    date: Optional[str] = Query(None, description="UTC day, YYYY-MM-DD"),
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    try:
        summary = get_stats_service().daily_summary(db, organization_id, date or today())
    except AppError as e:
        raise http_error(e)
    return summary.__dict__


@router.get("/heatmap", response_model=HeatmapResponse)
def get_heatmap(
    date: Optional[str] = Query(None, description="UTC day, YYYY-MM-DD"),
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """Hours without detections are omitted"""
    date = date or today()
    try:
        entries = get_stats_service().heatmap(db, organization_id, date)
    except AppError as e:
        raise http_error(e)
    return {
        "date": date,
        "organization_id": organization_id,
        "data": [entry.__dict__ for entry in entries],
    }


@router.get("/person-stats", response_model=PersonStatsResponse)
def get_person_stats(
    date: Optional[str] = Query(None, description="UTC day, YYYY-MM-DD"),
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    date = date or today()
    try:
        stats = get_stats_service().person_stats(db, organization_id, date)
    except AppError as e:
        raise http_error(e)
    return {"date": date, **stats.__dict__}


@router.get("/logs", response_model=PersonLogListResponse)
def list_logs(
    date_from: Optional[datetime] = Query(None, alias="from", description="RFC 3339 lower bound (inclusive)"),
    date_to: Optional[datetime] = Query(None, alias="to", description="RFC 3339 upper bound (inclusive)"),
    camera_id: Optional[str] = Query(None),
    person_id: Optional[str] = Query(None, description="Person hash"),
    page: int = Query(1),
    page_size: int = Query(10),
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """
    Detection logs, newest first

    page and page_size are clamped rather than rejected (page_size at most 100).
    """
    logs, pagination = get_stats_service().get_logs(db, LogFilter(
        organization_id=organization_id,
        date_from=_as_utc(date_from),
        date_to=_as_utc(date_to),
        camera_id=camera_id,
        person_id=person_id,
        page=page,
        page_size=page_size,
    ))
    return {"data": logs, "pagination": pagination.to_dict()}
