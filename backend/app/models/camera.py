"""Camera SQLAlchemy ORM model"""
from sqlalchemy import Column, String, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.base import TimestampedModel

CAMERA_STATUSES = ('active', 'inactive', 'maintenance')


class Camera(TimestampedModel, Base):
    """
    Physical camera belonging to exactly one organization.

    Detection logs reach an organization through their camera_id, so a
    camera lookup is how the sync pipeline resolves the tenant of an event.

    Attributes:
        name: User-friendly camera name (e.g., "Front Door")
        location: Where the camera is mounted (nullable)
        status: Lifecycle status - 'active', 'inactive' or 'maintenance'
        organization_id: Owning organization
    """

    __tablename__ = "cameras"

    name = Column(String(100), nullable=False)
    location = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)

    organization = relationship("Organization", back_populates="cameras")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'inactive', 'maintenance')", name='check_camera_status'),
    )

    def __repr__(self):
        return f"<Camera(id={self.id}, name={self.name}, status={self.status})>"
