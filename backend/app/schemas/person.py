"""Pydantic schemas for persons, face images and detection logs"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.common import PaginationResponse


class FaceImageResponse(BaseModel):
    id: str
    person_hash: str
    image_url: str
    thumbnail_url: Optional[str] = None
    camera_id: str
    organization_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class FaceImageListResponse(BaseModel):
    data: List[FaceImageResponse]
    pagination: PaginationResponse


class PersonResponse(BaseModel):
    id: str
    person_hash: str
    organization_id: str
    first_seen: datetime
    last_seen: datetime
    visit_count: int = Field(..., ge=1, description="Distinct detections reconciled for this person")

    model_config = {"from_attributes": True}


class PersonDetailResponse(PersonResponse):
    faces: List[FaceImageResponse] = Field(default_factory=list)


class PersonListResponse(BaseModel):
    data: List[PersonResponse]
    pagination: PaginationResponse


class PersonStatsDetailResponse(BaseModel):
    person_hash: str
    organization_id: str
    first_seen: datetime
    last_seen: datetime
    visit_count: int
    total_logs: int = Field(..., description="Live detection logs for this person")
    new: int
    repeat: int


class PersonLogResponse(BaseModel):
    id: str
    timestamp: datetime
    person_hash: str
    camera_id: str
    organization_id: str
    is_new_person: bool

    model_config = {"from_attributes": True}


class PersonLogListResponse(BaseModel):
    data: List[PersonLogResponse]
    pagination: PaginationResponse
