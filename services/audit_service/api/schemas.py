"""Request/response schemas for the audit API."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditEntryResponse(BaseModel):
    """One admin activity entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    user_id: str
    lease_id: Optional[UUID] = None
    car_id: Optional[UUID] = None
    description: str
    created_at: datetime


class ActivityListResponse(BaseModel):
    entries: List[AuditEntryResponse]
    total: int


class LeaseAuditTrailResponse(BaseModel):
    lease_id: UUID
    entries: List[AuditEntryResponse]
    total: int


class ActivitySummaryResponse(BaseModel):
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    total_entries: int
    entries_by_action: Dict[str, int]
    entries_by_date: Dict[str, int]


class AuditExportResponse(BaseModel):
    lease_id: UUID
    format: str
    data: str


class DeleteLeaseResponse(BaseModel):
    lease_id: UUID
    deleted: bool = True


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
