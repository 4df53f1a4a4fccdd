"""FaceImage SQLAlchemy ORM model"""
from sqlalchemy import Column, String, ForeignKey, Index
from app.core.database import Base
from app.models.base import TimestampedModel


class FaceImage(TimestampedModel, Base):
    """
    Pointer to a face snapshot held in blob storage.

    Attributes:
        person_hash: Person shown in the image
        image_url: Public URL of the stored blob
        thumbnail_url: Optional smaller rendition
        organization_id: Owning organization
        camera_id: Camera that captured the face
    """

    __tablename__ = "face_images"

    person_hash = Column(String(255), nullable=False)
    image_url = Column(String(1000), nullable=False)
    thumbnail_url = Column(String(1000), nullable=True)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False)
    camera_id = Column(String(36), ForeignKey("cameras.id"), nullable=False)

    __table_args__ = (
        Index('idx_face_images_person', 'organization_id', 'person_hash'),
    )

    def __repr__(self):
        return f"<FaceImage(id={self.id}, hash={self.person_hash}, url={self.image_url})>"
