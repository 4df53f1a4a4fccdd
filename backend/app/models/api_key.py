"""APIKey SQLAlchemy ORM model"""
from sqlalchemy import Column, String, DateTime, ForeignKey, or_
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.base import TimestampedModel, utcnow


class APIKey(TimestampedModel, Base):
    """
    Organization-scoped API key sent as X-API-Key.

    Attributes:
        key_value: The secret itself (unique)
        description: What the key is used for
        organization_id: Organization the key authenticates as
        expires_at: Expiry (NULL means the key never expires)
    """

    __tablename__ = "api_keys"

    key_value = Column(String(128), nullable=False, unique=True)
    description = Column(String(255), nullable=True)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    organization = relationship("Organization", back_populates="api_keys")

    @classmethod
    def is_usable(cls, now=None):
        """SQL criterion for keys that are live and not expired."""
        now = now or utcnow()
        return cls.deleted_at.is_(None) & or_(cls.expires_at.is_(None), cls.expires_at > now)

    def __repr__(self):
        return f"<APIKey(id={self.id}, organization_id={self.organization_id})>"
