"""Camera management scoped to one organization"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.camera import Camera, CAMERA_STATUSES
from app.models.face_image import FaceImage
from app.models.person_log import PersonLog
from app.services.pagination import Pagination, paginate

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "location", "status")


def _check_status(status: str) -> None:
    if status not in CAMERA_STATUSES:
        raise ValidationError(f"status must be one of {list(CAMERA_STATUSES)}", field="status")


class CameraService:
    """
    CRUD for cameras.

    Every operation takes the caller's organization_id; a camera of another
    organization behaves exactly like a missing one.
    """

    def list(
        self,
        db: Session,
        organization_id: str,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Camera], Pagination]:
        query = db.query(Camera).filter(
            Camera.organization_id == organization_id,
            Camera.is_live(),
        ).order_by(Camera.created_at.desc(), Camera.id)
        return paginate(query, page, page_size)

    def get(self, db: Session, camera_id: str, organization_id: str) -> Camera:
        camera = db.query(Camera).filter(
            Camera.id == camera_id,
            Camera.organization_id == organization_id,
            Camera.is_live(),
        ).first()
        if camera is None:
            raise NotFoundError(f"Camera {camera_id} not found")
        return camera

    def create(
        self,
        db: Session,
        organization_id: str,
        name: str,
        location: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Camera:
        if not name or not name.strip():
            raise ValidationError("Camera name is required", field="name")
        status = status or "active"
        _check_status(status)

        camera = Camera(
            name=name.strip(),
            location=location,
            status=status,
            organization_id=organization_id,
        )
        db.add(camera)
        db.commit()
        db.refresh(camera)

        logger.info(
            f"Camera created: {camera.id} ({camera.name})",
            extra={"event_type": "camera_created", "camera_id": camera.id, "organization_id": organization_id}
        )
        return camera

    def update(self, db: Session, camera_id: str, organization_id: str, **fields) -> Camera:
        camera = self.get(db, camera_id, organization_id)
        for key, value in fields.items():
            if key not in UPDATABLE_FIELDS or value is None:
                continue
            if key == "status":
                _check_status(value)
            if key == "name" and not value.strip():
                raise ValidationError("Camera name cannot be empty", field="name")
            setattr(camera, key, value)
        db.commit()
        db.refresh(camera)
        return camera

    def delete(self, db: Session, camera_id: str, organization_id: str) -> None:
        """
        Soft-delete a camera.

        Raises:
            NotFoundError: Unknown camera
            ConflictError: Detection logs or face images still reference it
        """
        camera = self.get(db, camera_id, organization_id)

        has_logs = db.query(PersonLog.id).filter(
            PersonLog.camera_id == camera_id,
            PersonLog.is_live(),
        ).first() is not None
        has_faces = db.query(FaceImage.id).filter(
            FaceImage.camera_id == camera_id,
            FaceImage.is_live(),
        ).first() is not None
        if has_logs or has_faces:
            raise ConflictError("Camera has detection logs or face images and cannot be deleted")

        camera.soft_delete()
        db.commit()
        logger.info(
            f"Camera deleted: {camera_id}",
            extra={"event_type": "camera_deleted", "camera_id": camera_id, "organization_id": organization_id}
        )


_camera_service = CameraService()


def get_camera_service() -> CameraService:
    return _camera_service
