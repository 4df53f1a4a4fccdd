"""User SQLAlchemy ORM model"""
from sqlalchemy import Column, String, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.base import TimestampedModel


class User(TimestampedModel, Base):
    """
    Dashboard user linked to a Firebase Authentication account.

    Attributes:
        firebase_uid: Firebase Authentication UID (unique)
        email: Login email (unique)
        name: Display name
        role: 'admin' or 'user'
        organization_id: Owning organization
    """

    __tablename__ = "users"

    firebase_uid = Column(String(128), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default="user")
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)

    organization = relationship("Organization", back_populates="users")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name='check_user_role'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
