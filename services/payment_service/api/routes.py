"""Payment webhook route."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.cache import LeaseCache
from shared.config import settings
from shared.database import get_db
from shared.event_bus import EventBusManager
from shared.exceptions import LeaseError
from services.lease_service.api.dependencies import (
    get_event_bus,
    get_lease_cache,
    get_notification_dispatcher,
    get_webhook_secret,
    http_error,
)
from services.notification_service.domain.notification_dispatcher import (
    NotificationDispatcher,
)
from services.payment_service.api.schemas import ErrorResponse, WebhookAckResponse
from services.payment_service.domain.payment_gateway import (
    StripePaymentGateway,
    get_payment_gateway,
)
from services.payment_service.domain.payment_service import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=settings.api_v1_prefix,
    tags=["payments"],
)


@router.post(
    "/payments/webhook",
    response_model=WebhookAckResponse,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    gateway: StripePaymentGateway = Depends(get_payment_gateway),
    webhook_secret: Optional[str] = Depends(get_webhook_secret),
    cache: LeaseCache = Depends(get_lease_cache),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    bus: EventBusManager = Depends(get_event_bus),
) -> WebhookAckResponse:
    """
    Receive a payment gateway event.

    The raw body is verified against the Stripe-Signature header before it
    is parsed. Duplicate and unknown events are acknowledged with 200; a
    500 makes the gateway redeliver.
    """
    raw_body = await request.body()

    try:
        event = gateway.verify_and_parse_webhook(raw_body, stripe_signature, webhook_secret)
    except LeaseError as e:
        raise http_error(e)

    try:
        reconciler = PaymentReconciler(db, cache=cache, dispatcher=dispatcher, bus=bus)
        result = await reconciler.reconcile_payment_event(event)

    except Exception as e:
        logger.error(f"Error reconciling gateway event {event.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process webhook",
        )

    return WebhookAckResponse(
        status=result["status"],
        event_type=result["event_type"],
        outcome=result.get("outcome"),
    )
