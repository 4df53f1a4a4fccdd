"""
Reporting Aggregator

Read-only queries over person_logs, scoped to one organization and one UTC
day [00:00, 24:00):

- daily_summary: total / new / repeat detections
- heatmap: detections per hour of day ("HH:00")
- person_stats: detections split by is_new_person

Each result is cached (cache-aside) under "<query>:<organization_id>:<date>"
for CACHE_TTL_SECONDS. Cache trouble never fails a request; the query just
runs against the database.

Also serves the filtered, paginated detection log listing (not cached).
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import case, extract, func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ValidationError
from app.models.person_log import PersonLog
from app.services.cache_service import CacheService, get_cache_service
from app.services.pagination import Pagination, paginate

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"

QUERY_NAMES = ("daily_summary", "heatmap", "person_stats")


@dataclass
class DailySummary:
    date: str
    total: int
    new: int
    repeat: int
    organization_id: str


@dataclass
class HeatmapData:
    hour: str
    count: int


@dataclass
class PersonStats:
    new: int
    repeat: int
    organization_id: str


@dataclass
class LogFilter:
    """Filters for the detection log listing. person_id is a person hash."""
    organization_id: str
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    camera_id: Optional[str] = None
    person_id: Optional[str] = None
    page: int = 1
    page_size: int = 10


def parse_day(date: str) -> Tuple[datetime, datetime]:
    """
    Parse YYYY-MM-DD into the UTC window [start, start + 24h).

    Raises:
        ValidationError: Not a valid YYYY-MM-DD date
    """
    try:
        start = datetime.strptime(date, DATE_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        raise ValidationError("Invalid date format, use YYYY-MM-DD", field="date")
    return start, start + timedelta(days=1)


def today() -> str:
    return datetime.now(timezone.utc).strftime(DATE_FORMAT)


def cache_key(query_name: str, organization_id: str, date: str) -> str:
    return f"{query_name}:{organization_id}:{date}"


def utc_hour(dialect_name: str):
    """Hour-of-day expression for PersonLog.timestamp, always in UTC."""
    timestamp = PersonLog.timestamp
    # timestamptz follows the session TimeZone on PostgreSQL
    if dialect_name == "postgresql":
        timestamp = func.timezone("UTC", timestamp)
    return extract("hour", timestamp)


class StatsService:
    """
    Aggregations over detection logs with a cache in front.

    Args:
        cache: Cache to use (defaults to the application cache)
        ttl: Entry lifetime in seconds (defaults to CACHE_TTL_SECONDS)
    """

    def __init__(self, cache: Optional[CacheService] = None, ttl: Optional[int] = None):
        self._cache = cache
        self.ttl = ttl or settings.CACHE_TTL_SECONDS

    @property
    def cache(self) -> CacheService:
        if self._cache is None:
            self._cache = get_cache_service()
        return self._cache

    def daily_summary(self, db: Session, organization_id: str, date: str) -> DailySummary:
        start, end = parse_day(date)
        date = start.strftime(DATE_FORMAT)
        value = self.cache.get_or_set(
            cache_key("daily_summary", organization_id, date),
            lambda: asdict(self._compute_daily_summary(db, organization_id, date, start, end)),
            ttl=self.ttl,
        )
        return DailySummary(**value)

    def heatmap(self, db: Session, organization_id: str, date: str) -> List[HeatmapData]:
        start, end = parse_day(date)
        date = start.strftime(DATE_FORMAT)
        value = self.cache.get_or_set(
            cache_key("heatmap", organization_id, date),
            lambda: [asdict(item) for item in self._compute_heatmap(db, organization_id, start, end)],
            ttl=self.ttl,
        )
        return [HeatmapData(**item) for item in value]

    def person_stats(self, db: Session, organization_id: str, date: str) -> PersonStats:
        start, end = parse_day(date)
        date = start.strftime(DATE_FORMAT)

        def compute():
            total, new = self._count_new_and_total(db, organization_id, start, end)
            return asdict(PersonStats(new=new, repeat=total - new, organization_id=organization_id))

        value = self.cache.get_or_set(
            cache_key("person_stats", organization_id, date),
            compute,
            ttl=self.ttl,
        )
        return PersonStats(**value)

    def invalidate_day(self, organization_id: str, day: datetime) -> None:
        """Drop cached reports for the UTC day an event landed in."""
        if day.tzinfo is not None:
            day = day.astimezone(timezone.utc)
        date = day.strftime(DATE_FORMAT)
        self.cache.delete(*(cache_key(name, organization_id, date) for name in QUERY_NAMES))

    def get_logs(self, db: Session, log_filter: LogFilter) -> Tuple[List[PersonLog], Pagination]:
        """Detection logs matching the filter, newest first."""
        query = db.query(PersonLog).filter(
            PersonLog.organization_id == log_filter.organization_id,
            PersonLog.is_live(),
        )
        if log_filter.date_from is not None:
            query = query.filter(PersonLog.timestamp >= log_filter.date_from)
        if log_filter.date_to is not None:
            query = query.filter(PersonLog.timestamp <= log_filter.date_to)
        if log_filter.camera_id:
            query = query.filter(PersonLog.camera_id == log_filter.camera_id)
        if log_filter.person_id:
            query = query.filter(PersonLog.person_hash == log_filter.person_id)

        query = query.order_by(PersonLog.timestamp.desc(), PersonLog.id)
        return paginate(query, log_filter.page, log_filter.page_size)

    def _count_new_and_total(
        self,
        db: Session,
        organization_id: str,
        start: datetime,
        end: datetime,
    ) -> Tuple[int, int]:
        total, new = db.query(
            func.count(PersonLog.id),
            func.coalesce(func.sum(case((PersonLog.is_new_person.is_(True), 1), else_=0)), 0),
        ).filter(
            PersonLog.organization_id == organization_id,
            PersonLog.timestamp >= start,
            PersonLog.timestamp < end,
            PersonLog.is_live(),
        ).one()
        return int(total or 0), int(new or 0)

    def _compute_daily_summary(
        self,
        db: Session,
        organization_id: str,
        date: str,
        start: datetime,
        end: datetime,
    ) -> DailySummary:
        total, new = self._count_new_and_total(db, organization_id, start, end)
        logger.debug(
            f"Computed daily summary for {organization_id} on {date}",
            extra={"event_type": "daily_summary_computed", "total": total, "new": new}
        )
        return DailySummary(
            date=date,
            total=total,
            new=new,
            repeat=total - new,
            organization_id=organization_id,
        )

    def _compute_heatmap(
        self,
        db: Session,
        organization_id: str,
        start: datetime,
        end: datetime,
    ) -> List[HeatmapData]:
        hour = utc_hour(db.get_bind().dialect.name)
        rows = db.query(hour.label("hour"), func.count(PersonLog.id)).filter(
            PersonLog.organization_id == organization_id,
            PersonLog.timestamp >= start,
            PersonLog.timestamp < end,
            PersonLog.is_live(),
        ).group_by(hour).order_by(hour).all()
        return [HeatmapData(hour=f"{int(h):02d}:00", count=int(count)) for h, count in rows]


_stats_service: Optional[StatsService] = None


def get_stats_service() -> StatsService:
    """Get the singleton StatsService instance."""
    global _stats_service
    if _stats_service is None:
        _stats_service = StatsService()
    return _stats_service


def reset_stats_service() -> None:
    """Reset the singleton instance (for testing)."""
    global _stats_service
    _stats_service = None
