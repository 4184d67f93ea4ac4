"""Admin audit API routes."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.database import get_db
from shared.exceptions import LeaseError
from services.audit_service.api.schemas import (
    ActivityListResponse,
    ActivitySummaryResponse,
    AuditEntryResponse,
    AuditExportResponse,
    DeleteLeaseResponse,
    ErrorResponse,
    LeaseAuditTrailResponse,
)
from services.audit_service.domain.audit_service import AuditQueryService
from services.lease_service.api.dependencies import UserContext, http_error, require_admin
from services.lease_service.api.routes import get_lease_service
from services.lease_service.domain.lease_service import LeaseService

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{settings.api_v1_prefix}/audit", tags=["audit"])


def _validate_range(start_date: Optional[datetime], end_date: Optional[datetime]):
    if start_date and end_date and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must be after start_date",
        )


@router.get(
    "/activity",
    response_model=ActivityListResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def get_recent_activity(
    action: Optional[str] = Query(None, description="Filter by action"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    admin: UserContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ActivityListResponse:
    """Recent admin activity, newest first."""
    _validate_range(start_date, end_date)

    service = AuditQueryService(db)
    entries = await service.get_recent_activity(action, start_date, end_date, skip, limit)

    return ActivityListResponse(
        entries=[AuditEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.get(
    "/summary",
    response_model=ActivitySummaryResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def get_activity_summary(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    admin: UserContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ActivitySummaryResponse:
    """Activity counts by action and day."""
    _validate_range(start_date, end_date)

    summary = await AuditQueryService(db).get_activity_summary(start_date, end_date)
    return ActivitySummaryResponse(**summary)


@router.get(
    "/leases/{lease_id}",
    response_model=LeaseAuditTrailResponse,
    responses={403: {"model": ErrorResponse}},
)
async def get_lease_audit_trail(
    lease_id: UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    admin: UserContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> LeaseAuditTrailResponse:
    """
    Audit trail of a lease in chronological order.

    Entries outlive the lease, so a deleted lease still has a trail.
    """
    entries = await AuditQueryService(db).get_lease_audit_trail(lease_id, skip, limit)

    return LeaseAuditTrailResponse(
        lease_id=lease_id,
        entries=[AuditEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.get(
    "/leases/{lease_id}/export",
    response_model=AuditExportResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def export_lease_audit_trail(
    lease_id: UUID,
    format: str = Query("json", pattern="^(json|csv)$"),
    admin: UserContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AuditExportResponse:
    """Export a lease's audit trail as JSON or CSV."""
    try:
        data = await AuditQueryService(db).export_lease_audit_trail(lease_id, format)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return AuditExportResponse(lease_id=lease_id, format=format, data=data)


@router.delete(
    "/leases/{lease_id}",
    response_model=DeleteLeaseResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_lease(
    lease_id: UUID,
    admin: UserContext = Depends(require_admin),
    service: LeaseService = Depends(get_lease_service),
) -> DeleteLeaseResponse:
    """Delete a lease and free its car (admin only)."""
    try:
        await service.admin_delete_lease(lease_id, admin.user_id)
    except LeaseError as e:
        raise http_error(e)

    return DeleteLeaseResponse(lease_id=lease_id)
