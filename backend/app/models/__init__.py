"""SQLAlchemy ORM models"""
from app.models.organization import Organization
from app.models.user import User
from app.models.api_key import APIKey
from app.models.camera import Camera
from app.models.person import Person
from app.models.person_log import PersonLog
from app.models.face_image import FaceImage

__all__ = [
    "Organization",
    "User",
    "APIKey",
    "Camera",
    "Person",
    "PersonLog",
    "FaceImage",
]
