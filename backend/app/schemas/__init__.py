"""Pydantic schemas for request/response validation"""
from app.schemas.common import PaginationResponse, MessageResponse
from app.schemas.organization import (
    OrganizationCreate,
    OrganizationUpdate,
    OrganizationResponse,
    OrganizationListResponse,
)
from app.schemas.camera import (
    CameraCreate,
    CameraUpdate,
    CameraResponse,
    CameraListResponse,
)
from app.schemas.person import (
    FaceImageResponse,
    FaceImageListResponse,
    PersonResponse,
    PersonDetailResponse,
    PersonListResponse,
    PersonStatsDetailResponse,
    PersonLogResponse,
    PersonLogListResponse,
)
from app.schemas.stats import (
    DailySummaryResponse,
    HeatmapEntry,
    HeatmapResponse,
    PersonStatsResponse,
)
from app.schemas.sync import (
    DetectionEventCreate,
    ReconcileResponse,
    BackfillResponse,
)

__all__ = [
    "PaginationResponse",
    "MessageResponse",
    "OrganizationCreate",
    "OrganizationUpdate",
    "OrganizationResponse",
    "OrganizationListResponse",
    "CameraCreate",
    "CameraUpdate",
    "CameraResponse",
    "CameraListResponse",
    "FaceImageResponse",
    "FaceImageListResponse",
    "PersonResponse",
    "PersonDetailResponse",
    "PersonListResponse",
    "PersonStatsDetailResponse",
    "PersonLogResponse",
    "PersonLogListResponse",
    "DailySummaryResponse",
    "HeatmapEntry",
    "HeatmapResponse",
    "PersonStatsResponse",
    "DetectionEventCreate",
    "ReconcileResponse",
    "BackfillResponse",
]
