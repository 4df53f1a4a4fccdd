"""
Face image service

Uploads go blob first, row second. A row never points at a blob that was not
written; a failed insert deletes the blob it just wrote.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AppError, NotFoundError, ValidationError
from app.models.camera import Camera
from app.models.face_image import FaceImage
from app.services.pagination import Pagination, paginate
from app.services.storage import BlobStorage, get_blob_storage

logger = logging.getLogger(__name__)


class PayloadTooLargeError(AppError):
    status_code = 413


class FaceService:
    def __init__(self, storage: Optional[BlobStorage] = None):
        self._storage = storage

    @property
    def storage(self) -> BlobStorage:
        if self._storage is None:
            self._storage = get_blob_storage()
        return self._storage

    async def upload(
        self,
        db: Session,
        organization_id: str,
        camera_id: str,
        person_hash: str,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str] = None,
    ) -> FaceImage:
        """
        Store a face snapshot and record it.

        Raises:
            ValidationError: Missing field or empty file
            PayloadTooLargeError: File larger than MAX_UPLOAD_BYTES
            NotFoundError: Camera not in this organization
        """
        if not person_hash:
            raise ValidationError("person_hash is required", field="person_hash")
        if not camera_id:
            raise ValidationError("camera_id is required", field="camera_id")
        if not content:
            raise ValidationError("image is required", field="image")
        if len(content) > settings.MAX_UPLOAD_BYTES:
            raise PayloadTooLargeError(
                f"Image exceeds {settings.MAX_UPLOAD_BYTES} bytes", field="image"
            )

        camera = db.query(Camera.id).filter(
            Camera.id == camera_id,
            Camera.organization_id == organization_id,
            Camera.is_live(),
        ).first()
        if camera is None:
            raise NotFoundError(f"Camera {camera_id} not found")

        url = await self.storage.upload(organization_id, person_hash, filename, content, content_type)

        try:
            face = FaceImage(
                person_hash=person_hash,
                image_url=url,
                organization_id=organization_id,
                camera_id=camera_id,
            )
            db.add(face)
            db.commit()
            db.refresh(face)
        except Exception:
            db.rollback()
            logger.error(
                f"Face image insert failed, removing blob {url}",
                extra={"event_type": "face_upload_rollback", "organization_id": organization_id},
                exc_info=True,
            )
            await self.storage.delete(url)
            raise

        logger.info(
            f"Face image stored for {person_hash}",
            extra={
                "event_type": "face_uploaded",
                "face_id": face.id,
                "person_hash": person_hash,
                "camera_id": camera_id,
                "size_bytes": len(content),
            }
        )
        return face

    def list(
        self,
        db: Session,
        person_hash: str,
        organization_id: str,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[FaceImage], Pagination]:
        query = db.query(FaceImage).filter(
            FaceImage.person_hash == person_hash,
            FaceImage.organization_id == organization_id,
            FaceImage.is_live(),
        ).order_by(FaceImage.created_at.desc(), FaceImage.id)
        return paginate(query, page, page_size)

    async def delete(self, db: Session, face_id: str, organization_id: str) -> None:
        """Soft-delete the row, then remove the blob. A blob failure is only logged."""
        face = db.query(FaceImage).filter(
            FaceImage.id == face_id,
            FaceImage.organization_id == organization_id,
            FaceImage.is_live(),
        ).first()
        if face is None:
            raise NotFoundError(f"Face image {face_id} not found")

        url = face.image_url
        face.soft_delete()
        db.commit()

        try:
            await self.storage.delete(url)
        except Exception as e:
            logger.warning(
                f"Could not delete blob {url}: {e}",
                extra={"event_type": "face_blob_delete_failed", "face_id": face_id}
            )


_face_service: Optional[FaceService] = None


def get_face_service() -> FaceService:
    global _face_service
    if _face_service is None:
        _face_service = FaceService()
    return _face_service
