"""Pydantic schemas for the reporting endpoints"""
from typing import List

from pydantic import BaseModel, Field


class DailySummaryResponse(BaseModel):
    date: str = Field(..., description="UTC day, YYYY-MM-DD")
    total: int
    new: int
    repeat: int
    organization_id: str


class HeatmapEntry(BaseModel):
    hour: str = Field(..., description="Hour of day as HH:00")
    count: int


class HeatmapResponse(BaseModel):
    date: str
    organization_id: str
    data: List[HeatmapEntry]


class PersonStatsResponse(BaseModel):
    date: str
    new: int
    repeat: int
    organization_id: str
