"""
Organization API endpoints

- GET /organizations - List organizations
- POST /organizations - Create organization
- GET/PUT/DELETE /organizations/{id} - Only the caller's own organization (403 otherwise)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_organization_id, http_error
from app.core.database import get_db
from app.core.errors import AppError
from app.schemas.common import MessageResponse
from app.schemas.organization import (
    OrganizationCreate,
    OrganizationListResponse,
    OrganizationResponse,
    OrganizationUpdate,
)
from app.services.organization_service import get_organization_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations", tags=["organizations"])

organization_service = get_organization_service()


def _require_own_organization(organization_id: str, caller_organization_id: str) -> None:
    if organization_id != caller_organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access to this organization is not allowed"
        )


@router.get("", response_model=OrganizationListResponse)
def list_organizations(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    caller_organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    organizations, pagination = organization_service.list(db, page, page_size)
    return {"data": organizations, "pagination": pagination.to_dict()}


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
def create_organization(
    data: OrganizationCreate,
    caller_organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    try:
        return organization_service.create(db, data.name, data.description)
    except AppError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to create organization: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create organization"
        )


@router.get("/{organization_id}", response_model=OrganizationResponse)
def get_organization(
    organization_id: str,
    caller_organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    _require_own_organization(organization_id, caller_organization_id)
    try:
        return organization_service.get(db, organization_id)
    except AppError as e:
        raise http_error(e)


@router.put("/{organization_id}", response_model=OrganizationResponse)
def update_organization(
    organization_id: str,
    data: OrganizationUpdate,
    caller_organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    _require_own_organization(organization_id, caller_organization_id)
    try:
        return organization_service.update(db, organization_id, **data.model_dump(exclude_unset=True))
    except AppError as e:
        raise http_error(e)


@router.delete("/{organization_id}", response_model=MessageResponse)
def delete_organization(
    organization_id: str,
    caller_organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """
    Delete the caller's organization

    Raises:
        HTTPException: 403 for another organization, 409 while cameras,
            detections or face images remain
    """
    _require_own_organization(organization_id, caller_organization_id)
    try:
        organization_service.delete(db, organization_id)
    except AppError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to delete organization {organization_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete organization"
        )
    return {"message": "Organization deleted"}
