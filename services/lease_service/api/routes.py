"""Lease and car API routes."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.cache import LeaseCache
from shared.config import settings
from shared.database import get_db
from shared.event_bus import EventBusManager
from shared.exceptions import LeaseError
from shared.views import CarView, LeaseView, PaymentHistoryView
from services.lease_service.api.dependencies import (
    UserContext,
    get_current_user,
    get_event_bus,
    get_lease_cache,
    get_notification_dispatcher,
    http_error,
    require_admin,
)
from services.lease_service.api.schemas import (
    CarListResponse,
    CreateCarRequest,
    CreateLeaseRequest,
    CreateLeaseResponse,
    ErrorResponse,
    ExtendLeaseRequest,
    ExtendLeaseResponse,
    LeaseListResponse,
)
from services.lease_service.domain.car_service import CarService
from services.lease_service.domain.lease_service import LeaseService
from services.notification_service.domain.notification_dispatcher import (
    NotificationDispatcher,
)
from services.payment_service.domain.payment_gateway import (
    StripePaymentGateway,
    get_payment_gateway,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=f"{settings.api_v1_prefix}/leases",
    tags=["leases"],
)

cars_router = APIRouter(
    prefix=f"{settings.api_v1_prefix}/cars",
    tags=["cars"],
)


def get_lease_service(
    db: AsyncSession = Depends(get_db),
    gateway: StripePaymentGateway = Depends(get_payment_gateway),
    cache: LeaseCache = Depends(get_lease_cache),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    bus: EventBusManager = Depends(get_event_bus),
) -> LeaseService:
    return LeaseService(db, gateway=gateway, cache=cache, dispatcher=dispatcher, bus=bus)


def get_car_service(
    db: AsyncSession = Depends(get_db),
    cache: LeaseCache = Depends(get_lease_cache),
) -> CarService:
    return CarService(db, cache=cache)


@router.post(
    "",
    response_model=CreateLeaseResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def create_lease(
    request: CreateLeaseRequest,
    user: UserContext = Depends(get_current_user),
    service: LeaseService = Depends(get_lease_service),
) -> CreateLeaseResponse:
    """
    Reserve a car and open a pending lease.

    The lease becomes ACTIVE once the gateway confirms payment of the
    returned client secret.
    """
    try:
        lease, client_secret = await service.create_lease(
            user_id=user.user_id,
            car_id=request.car_id,
            start_date=request.start_date,
            end_date=request.end_date,
            email=user.email,
        )
    except LeaseError as e:
        raise http_error(e)

    except Exception as e:
        logger.error(f"Error creating lease: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create lease",
        )

    return CreateLeaseResponse(
        lease=LeaseView.model_validate(lease),
        client_secret=client_secret,
    )


@router.get(
    "",
    response_model=LeaseListResponse,
)
async def list_my_leases(
    user: UserContext = Depends(get_current_user),
    service: LeaseService = Depends(get_lease_service),
) -> LeaseListResponse:
    """All leases of the current user, newest first."""
    leases = await service.list_user_leases(user.user_id)
    return LeaseListResponse(leases=leases, total=len(leases))


@router.get(
    "/payment-history",
    response_model=PaymentHistoryView,
)
async def get_payment_history(
    user: UserContext = Depends(get_current_user),
    service: LeaseService = Depends(get_lease_service),
) -> PaymentHistoryView:
    """Paid, pending and cancelled lease totals for the current user."""
    return await service.get_payment_history(user.user_id)


@router.get(
    "/{lease_id}",
    response_model=LeaseView,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_lease(
    lease_id: UUID,
    user: UserContext = Depends(get_current_user),
    service: LeaseService = Depends(get_lease_service),
) -> LeaseView:
    """Get a lease by ID."""
    try:
        return await service.get_lease(lease_id, user_id=user.user_id, is_admin=user.is_admin)
    except LeaseError as e:
        raise http_error(e)


@router.post(
    "/{lease_id}/extend",
    response_model=ExtendLeaseResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def extend_lease(
    lease_id: UUID,
    request: ExtendLeaseRequest,
    user: UserContext = Depends(get_current_user),
    service: LeaseService = Depends(get_lease_service),
) -> ExtendLeaseResponse:
    """
    Request an extension of an active lease.

    Only allowed when one day or less is left on the lease.
    """
    try:
        lease, client_secret, charge = await service.extend_lease(
            lease_id=lease_id,
            user_id=user.user_id,
            additional_days=request.additional_days,
            email=user.email,
        )
    except LeaseError as e:
        raise http_error(e)

    except Exception as e:
        logger.error(f"Error extending lease {lease_id}: {e}", extra={"lease_id": str(lease_id)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to extend lease",
        )

    return ExtendLeaseResponse(
        lease=LeaseView.model_validate(lease),
        client_secret=client_secret,
        extension_charge=charge,
    )


@router.post(
    "/{lease_id}/return",
    response_model=LeaseView,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def return_car(
    lease_id: UUID,
    user: UserContext = Depends(get_current_user),
    service: LeaseService = Depends(get_lease_service),
) -> LeaseView:
    """Return the leased car and complete the lease."""
    try:
        lease = await service.return_car(lease_id=lease_id, user_id=user.user_id)
    except LeaseError as e:
        raise http_error(e)

    except Exception as e:
        logger.error(f"Error returning lease {lease_id}: {e}", extra={"lease_id": str(lease_id)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to return car",
        )

    return LeaseView.model_validate(lease)


@cars_router.get(
    "",
    response_model=CarListResponse,
)
async def list_cars(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    available_only: bool = Query(False),
    service: CarService = Depends(get_car_service),
) -> CarListResponse:
    """Browse cars."""
    cars = await service.list_cars(skip=skip, limit=limit, available_only=available_only)
    return CarListResponse(cars=cars, total=len(cars))


@cars_router.get(
    "/{car_id}",
    response_model=CarView,
    responses={404: {"model": ErrorResponse}},
)
async def get_car(
    car_id: UUID,
    service: CarService = Depends(get_car_service),
) -> CarView:
    """Get a car by ID."""
    try:
        return await service.get_car(car_id)
    except LeaseError as e:
        raise http_error(e)


@cars_router.post(
    "",
    response_model=CarView,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
    },
)
async def create_car(
    request: CreateCarRequest,
    admin: UserContext = Depends(require_admin),
    service: CarService = Depends(get_car_service),
) -> CarView:
    """List a new car (admin only)."""
    try:
        return await service.create_car(
            admin_id=admin.user_id,
            brand=request.brand,
            model_name=request.model_name,
            year=request.year,
            price_per_day=request.price_per_day,
        )
    except LeaseError as e:
        raise http_error(e)
