"""Organization SQLAlchemy ORM model"""
from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.base import TimestampedModel


class Organization(TimestampedModel, Base):
    """
    Tenant boundary. Every other row carries an organization_id.

    Attributes:
        name: Display name
        description: Free text (nullable)
    """

    __tablename__ = "organizations"

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    cameras = relationship("Camera", back_populates="organization")
    api_keys = relationship("APIKey", back_populates="organization")
    users = relationship("User", back_populates="organization")

    def __repr__(self):
        return f"<Organization(id={self.id}, name={self.name})>"
