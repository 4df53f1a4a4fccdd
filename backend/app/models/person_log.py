"""PersonLog (detection log) SQLAlchemy ORM model"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Index
from app.core.database import Base
from app.models.base import TimestampedModel


class PersonLog(TimestampedModel, Base):
    """
    One row per reconciled detection event.

    Rows are immutable after creation except for soft deletion and
    is_new_person, the one mutable column: a late, earlier detection of the
    same hash clears it on the rows after that detection. The unique
    constraint on (person_hash, camera_id, timestamp) is the dedup key that
    makes re-ingesting the same event a no-op; it also covers soft-deleted
    rows so a deleted detection is not resurrected by a later backfill.

    Attributes:
        timestamp: Event time (UTC, whole seconds)
        person_hash: Person the camera saw
        camera_id: Camera that produced the event
        organization_id: Organization resolved from the camera
        is_new_person: True for the earliest live detection of the hash in
            the organization; cleared if an earlier one is reconciled later
    """

    __tablename__ = "person_logs"

    timestamp = Column(DateTime(timezone=True), nullable=False)
    person_hash = Column(String(255), nullable=False)
    camera_id = Column(String(36), nullable=False)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False)
    is_new_person = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint('person_hash', 'camera_id', 'timestamp', name='uq_person_log_dedup'),
        Index('idx_person_logs_org_timestamp', 'organization_id', 'timestamp'),
        Index('idx_person_logs_hash_timestamp', 'person_hash', 'timestamp'),
        Index('idx_person_logs_camera', 'camera_id'),
    )

    def __repr__(self):
        return (
            f"<PersonLog(id={self.id}, hash={self.person_hash}, camera={self.camera_id}, "
            f"timestamp={self.timestamp}, new={self.is_new_person})>"
        )
