"""
Person API endpoints

- GET /persons - List persons, most recently seen first
- GET /persons/{person_hash} - Person with face images
- GET /persons/{person_hash}/stats - Visit statistics
- DELETE /persons/{person_hash} - Delete person, its detections and face images
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_organization_id, http_error
from app.core.database import get_db
from app.core.errors import AppError
from app.schemas.common import MessageResponse
from app.schemas.person import (
    FaceImageResponse,
    PersonDetailResponse,
    PersonListResponse,
    PersonResponse,
    PersonStatsDetailResponse,
)
from app.services.person_service import get_person_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/persons", tags=["persons"])

person_service = get_person_service()


@router.get("", response_model=PersonListResponse)
def list_persons(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    persons, pagination = person_service.list_persons(db, organization_id, page, page_size)
    return {"data": persons, "pagination": pagination.to_dict()}


@router.get("/{person_hash}", response_model=PersonDetailResponse)
def get_person(
    person_hash: str,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    try:
        person, faces = person_service.get_person(db, person_hash, organization_id)
    except AppError as e:
        raise http_error(e)
    return PersonDetailResponse(
        **PersonResponse.model_validate(person).model_dump(),
        faces=[FaceImageResponse.model_validate(face) for face in faces],
    )


@router.get("/{person_hash}/stats", response_model=PersonStatsDetailResponse)
def get_person_stats(
    person_hash: str,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    try:
        stats = person_service.get_person_stats(db, person_hash, organization_id)
    except AppError as e:
        raise http_error(e)
    return stats.__dict__


@router.delete("/{person_hash}", response_model=MessageResponse)
def delete_person(
    person_hash: str,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """
    Delete a person together with its detection logs and face images

    Stored face blobs are kept; only the rows are removed.

    Raises:
        HTTPException: 404 if the person does not exist
    """
    try:
        person_service.delete_person(db, person_hash, organization_id)
    except AppError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to delete person {person_hash}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete person"
        )
    return {"message": "Person deleted"}
