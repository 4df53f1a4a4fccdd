"""Pydantic schemas for the sync endpoints"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class DetectionEventCreate(BaseModel):
    """
    One detection submitted over HTTP.

    Same shape as a record in the realtime feed. Semantic checks (non-empty
    fields, positive timestamp) happen in the reconciler so both paths
    reject the same events.
    """

    id: Optional[str] = Field(None, max_length=255, description="Feed record id; generated when omitted")
    timestamp: float = Field(..., description="Unix seconds")
    person_hash: str = Field(..., max_length=255)
    camera_id: str = Field(..., max_length=255)
    publish: bool = Field(default=False, description="Also push the event into the realtime feed")


class ReconcileResponse(BaseModel):
    event_id: str
    organization_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    duplicate: bool
    is_new_person: bool
    person_created: bool
    log_id: Optional[str] = None
    used_default_organization: bool


class EventFailureResponse(BaseModel):
    event_id: str
    error_type: str
    message: str


class BackfillResponse(BaseModel):
    fetched: int
    reconciled: int
    duplicates: int
    failed: int
    errors: List[EventFailureResponse]
    watermark: Optional[float] = None
