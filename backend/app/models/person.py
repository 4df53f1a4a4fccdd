"""Person SQLAlchemy ORM model"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint, Index
from app.core.database import Base
from app.models.base import TimestampedModel


class Person(TimestampedModel, Base):
    """
    Per-organization aggregate of everything seen for one person hash.

    Rows are only written through app.services.person_ledger, which keeps
    the counters consistent under concurrent writers.

    Attributes:
        person_hash: Opaque identifier produced by the face pipeline
        organization_id: Owning organization; (person_hash, organization_id) is unique
        first_seen: Earliest event timestamp reconciled so far (moves back when
            an earlier event arrives late)
        last_seen: Latest event timestamp reconciled so far
        visit_count: Number of detection logs reconciled for this person (>= 1)
    """

    __tablename__ = "persons"

    person_hash = Column(String(255), nullable=False)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False)
    first_seen = Column(DateTime(timezone=True), nullable=False)
    last_seen = Column(DateTime(timezone=True), nullable=False)
    visit_count = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint('person_hash', 'organization_id', name='uq_person_hash_org'),
        CheckConstraint('visit_count >= 1', name='check_visit_count_positive'),
        CheckConstraint('first_seen <= last_seen', name='check_seen_order'),
        Index('idx_persons_org_last_seen', 'organization_id', 'last_seen'),
    )

    def __repr__(self):
        return (
            f"<Person(hash={self.person_hash}, org={self.organization_id}, "
            f"visits={self.visit_count})>"
        )
