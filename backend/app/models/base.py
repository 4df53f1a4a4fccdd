"""Columns shared by every table"""
from sqlalchemy import Column, String, DateTime
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampedModel:
    """
    Mixin with the identity, audit and soft-delete columns.

    Attributes:
        id: UUID primary key
        created_at: Record creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
        deleted_at: Soft-delete tombstone; NULL for live rows. Queries must
            filter on it explicitly (see `is_live`).
    """

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    @classmethod
    def is_live(cls):
        """SQL criterion selecting rows that are not soft-deleted."""
        return cls.deleted_at.is_(None)

    def soft_delete(self, when: datetime = None) -> None:
        self.deleted_at = when or utcnow()
