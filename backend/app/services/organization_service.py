"""Organization management and first-run bootstrap"""
import logging
import secrets
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.api_key import APIKey
from app.models.base import utcnow
from app.models.camera import Camera
from app.models.face_image import FaceImage
from app.models.organization import Organization
from app.models.person_log import PersonLog
from app.models.user import User
from app.services.pagination import Pagination, paginate

logger = logging.getLogger(__name__)

DEFAULT_ORGANIZATION_NAME = "Default Organization"

UPDATABLE_FIELDS = ("name", "description")


class OrganizationService:
    """CRUD for organizations. Every read ignores soft-deleted rows."""

    def list(self, db: Session, page: int = 1, page_size: int = 10) -> Tuple[List[Organization], Pagination]:
        query = db.query(Organization).filter(Organization.is_live()).order_by(
            Organization.created_at.desc(), Organization.id
        )
        return paginate(query, page, page_size)

    def get(self, db: Session, organization_id: str) -> Organization:
        organization = db.query(Organization).filter(
            Organization.id == organization_id,
            Organization.is_live(),
        ).first()
        if organization is None:
            raise NotFoundError(f"Organization {organization_id} not found")
        return organization

    def create(self, db: Session, name: str, description: Optional[str] = None) -> Organization:
        if not name or not name.strip():
            raise ValidationError("Organization name is required", field="name")

        organization = Organization(name=name.strip(), description=description)
        db.add(organization)
        db.commit()
        db.refresh(organization)
        logger.info(
            f"Organization created: {organization.id} ({organization.name})",
            extra={"event_type": "organization_created", "organization_id": organization.id}
        )
        return organization

    def update(self, db: Session, organization_id: str, **fields) -> Organization:
        organization = self.get(db, organization_id)
        for key, value in fields.items():
            if key not in UPDATABLE_FIELDS or value is None:
                continue
            if key == "name" and not value.strip():
                raise ValidationError("Organization name cannot be empty", field="name")
            setattr(organization, key, value)
        db.commit()
        db.refresh(organization)
        return organization

    def delete(self, db: Session, organization_id: str) -> None:
        """
        Soft-delete an organization with its API keys and users.

        Raises:
            NotFoundError: Unknown organization
            ConflictError: Detection logs, face images or cameras still exist
        """
        organization = self.get(db, organization_id)

        for model, label in ((PersonLog, "detection logs"), (FaceImage, "face images"), (Camera, "cameras")):
            in_use = db.query(model.id).filter(
                model.organization_id == organization_id,
                model.is_live(),
            ).first()
            if in_use is not None:
                raise ConflictError(f"Organization still has {label}; delete them first")

        now = utcnow()
        for model in (APIKey, User):
            db.query(model).filter(
                model.organization_id == organization_id,
                model.is_live(),
            ).update({model.deleted_at: now}, synchronize_session=False)
        organization.soft_delete(now)
        db.commit()

        logger.info(
            f"Organization deleted: {organization_id}",
            extra={"event_type": "organization_deleted", "organization_id": organization_id}
        )

    def ensure_default_organization(self, db: Session) -> Tuple[Organization, Optional[str]]:
        """
        Create the default organization and its API key on an empty database.

        Returns:
            (organization, api_key) where api_key is only set when it was
            just created; otherwise (oldest live organization, None)
        """
        existing = db.query(Organization).filter(Organization.is_live()).order_by(
            Organization.created_at.asc(), Organization.id.asc()
        ).first()
        if existing is not None:
            return existing, None

        organization = Organization(
            name=DEFAULT_ORGANIZATION_NAME,
            description="Created on first start",
        )
        db.add(organization)
        db.flush()

        key_value = settings.API_KEY or secrets.token_urlsafe(32)
        db.add(APIKey(
            key_value=key_value,
            description="Default API key",
            organization_id=organization.id,
        ))
        db.commit()
        db.refresh(organization)
        return organization, key_value


_organization_service = OrganizationService()


def get_organization_service() -> OrganizationService:
    return _organization_service
