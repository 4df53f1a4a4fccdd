"""
Camera CRUD API endpoints

Provides REST API for the caller organization's cameras:
- POST /cameras - Create new camera
- GET /cameras - List cameras (paginated)
- GET /cameras/{id} - Get single camera
- PUT /cameras/{id} - Update camera
- DELETE /cameras/{id} - Delete camera (refused while it has detections or faces)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_organization_id, http_error
from app.core.database import get_db
from app.core.errors import AppError
from app.schemas.camera import CameraCreate, CameraListResponse, CameraResponse, CameraUpdate
from app.schemas.common import MessageResponse
from app.services.camera_service import get_camera_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cameras", tags=["cameras"])

camera_service = get_camera_service()


@router.post("", response_model=CameraResponse, status_code=status.HTTP_201_CREATED)
def create_camera(
    camera_data: CameraCreate,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """
    Create a new camera

    Args:
        camera_data: Camera name, location and status
        organization_id: Caller organization (from the API key)
        db: Database session

    Returns:
        Created camera

    Raises:
        HTTPException: 400 if validation fails, 500 on database error
    """
    try:
        return camera_service.create(
            db,
            organization_id,
            name=camera_data.name,
            location=camera_data.location,
            status=camera_data.status,
        )
    except AppError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to create camera: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create camera"
        )


@router.get("", response_model=CameraListResponse)
def list_cameras(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """List cameras, newest first"""
    cameras, pagination = camera_service.list(db, organization_id, page, page_size)
    return {"data": cameras, "pagination": pagination.to_dict()}


@router.get("/{camera_id}", response_model=CameraResponse)
def get_camera(
    camera_id: str,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    try:
        return camera_service.get(db, camera_id, organization_id)
    except AppError as e:
        raise http_error(e)


@router.put("/{camera_id}", response_model=CameraResponse)
def update_camera(
    camera_id: str,
    camera_data: CameraUpdate,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """
    Update camera fields; omitted fields are left unchanged

    Raises:
        HTTPException: 404 if camera not found, 400 if validation fails
    """
    try:
        return camera_service.update(
            db,
            camera_id,
            organization_id,
            **camera_data.model_dump(exclude_unset=True)
        )
    except AppError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to update camera {camera_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update camera"
        )


@router.delete("/{camera_id}", response_model=MessageResponse)
def delete_camera(
    camera_id: str,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """
    Delete a camera

    Raises:
        HTTPException: 404 if camera not found, 409 if it still has detections or faces
    """
    try:
        camera_service.delete(db, camera_id, organization_id)
    except AppError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to delete camera {camera_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete camera"
        )
    return {"message": "Camera deleted"}
