"""Pydantic schemas for camera API endpoints"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from app.schemas.common import PaginationResponse

CameraStatus = Literal['active', 'inactive', 'maintenance']


class CameraBase(BaseModel):
    """Base camera schema with common fields"""

    name: str = Field(..., min_length=1, max_length=255, description="User-friendly camera name")
    location: Optional[str] = Field(None, max_length=255, description="Where the camera is mounted")


class CameraCreate(CameraBase):
    status: CameraStatus = Field(default='active', description="Operational status")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"name": "Front Door", "location": "Lobby", "status": "active"}
            ]
        }
    }


class CameraUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    status: Optional[CameraStatus] = None


class CameraResponse(CameraBase):
    id: str
    status: str
    organization_id: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CameraListResponse(BaseModel):
    data: List[CameraResponse]
    pagination: PaginationResponse
