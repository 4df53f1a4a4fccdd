"""Shared response envelopes"""
from pydantic import BaseModel, Field


class PaginationResponse(BaseModel):
    total: int = Field(..., ge=0, description="Matching rows across all pages")
    page: int = Field(..., ge=1, description="Current page (1-based)")
    page_size: int = Field(..., ge=1, description="Rows per page")
    total_page: int = Field(..., ge=0, description="Number of pages")


class MessageResponse(BaseModel):
    message: str
