"""
Face image API endpoints

- POST /faces - Upload a face snapshot (multipart: image, person_hash, camera_id)
- GET /faces/{person_hash} - List a person's face images
- DELETE /faces/image/{id} - Delete one face image
- GET /faces/files/{organization_id}/{filename} - Serve a locally stored image
"""
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_organization_id, http_error
from app.core.database import get_db
from app.core.errors import AppError
from app.schemas.common import MessageResponse
from app.schemas.person import FaceImageListResponse, FaceImageResponse
from app.services.face_service import get_face_service
from app.services.storage import LocalBlobStorage, get_blob_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/faces", tags=["faces"])


@router.post("", response_model=FaceImageResponse, status_code=status.HTTP_201_CREATED)
async def upload_face(
    image: UploadFile = File(..., description="Face snapshot"),
    person_hash: str = Form(...),
    camera_id: str = Form(...),
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    """
    Upload a face image for a person

    Raises:
        HTTPException: 400 missing field, 404 camera not found, 413 image too large
    """
    content = await image.read()
    try:
        return await get_face_service().upload(
            db,
            organization_id,
            camera_id=camera_id,
            person_hash=person_hash,
            filename=image.filename,
            content=content,
            content_type=image.content_type,
        )
    except AppError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Face upload failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store face image"
        )


@router.get("/files/{organization_id}/{filename}")
def get_face_file(organization_id: str, filename: str):
    """Serve a file written by the local storage backend"""
    storage = get_blob_storage()
    if not isinstance(storage, LocalBlobStorage):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    try:
        path = storage.path_for(organization_id, filename)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileResponse(path)


@router.get("/{person_hash}", response_model=FaceImageListResponse)
def list_faces(
    person_hash: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    faces, pagination = get_face_service().list(db, person_hash, organization_id, page, page_size)
    return {"data": faces, "pagination": pagination.to_dict()}


@router.delete("/image/{face_id}", response_model=MessageResponse)
async def delete_face(
    face_id: str,
    organization_id: str = Depends(get_current_organization_id),
    db: Session = Depends(get_db)
):
    try:
        await get_face_service().delete(db, face_id, organization_id)
    except AppError as e:
        raise http_error(e)
    return {"message": "Face image deleted"}
