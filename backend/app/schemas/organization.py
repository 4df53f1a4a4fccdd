"""Pydantic schemas for organization API endpoints"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.common import PaginationResponse


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Organization display name")
    description: Optional[str] = Field(None, max_length=1000, description="Free-form description")


class OrganizationUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)


class OrganizationResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrganizationListResponse(BaseModel):
    data: List[OrganizationResponse]
    pagination: PaginationResponse
