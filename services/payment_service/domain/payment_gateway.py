"""Stripe payment gateway adapter."""

import asyncio
import json
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe
from pydantic import BaseModel, ConfigDict, Field

from shared.config import settings
from shared.exceptions import (
    ConfigurationError,
    UpstreamFailureError,
    WebhookVerificationError,
)
from shared.retry_manager import GATEWAY_RETRY_CONFIG, RetryScheduler
from .intents import CreateLeaseIntent, ExtendLeaseIntent

logger = logging.getLogger(__name__)


class PaymentIntentHandle(BaseModel):
    """What the lifecycle manager needs back from a created intent."""

    id: str
    client_secret: Optional[str] = None
    amount: int
    currency: str


class PaymentIntentObject(BaseModel):
    """The payment intent carried by a webhook event."""

    model_config = ConfigDict(extra="ignore")

    id: str
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class GatewayEvent(BaseModel):
    """A verified webhook event."""

    id: str
    type: str
    payment_intent: Optional[PaymentIntentObject] = None


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_gateway_event(body: dict) -> GatewayEvent:
    """Build a GatewayEvent from a decoded webhook body."""
    event_type = body.get("type", "unknown")
    obj = (body.get("data") or {}).get("object") or {}

    payment_intent = None
    if event_type.startswith("payment_intent.") and obj.get("id"):
        payment_intent = PaymentIntentObject.model_validate(obj)

    return GatewayEvent(
        id=body.get("id", "unknown"),
        type=event_type,
        payment_intent=payment_intent,
    )


class StripePaymentGateway:
    """Creates payment intents and verifies webhooks with Stripe."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        webhook_tolerance_seconds: Optional[int] = None,
        retry_scheduler: Optional[RetryScheduler] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        self.timeout_seconds = timeout_seconds or settings.payment_timeout_seconds
        self.webhook_tolerance_seconds = (
            webhook_tolerance_seconds or settings.stripe_webhook_tolerance_seconds
        )
        self.retry_scheduler = retry_scheduler or RetryScheduler(
            GATEWAY_RETRY_CONFIG,
            retry_on=(stripe.APIConnectionError, stripe.RateLimitError),
        )

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: CreateLeaseIntent | ExtendLeaseIntent,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntentHandle:
        """
        Create a payment intent for amount (major units).

        Raises:
            UpstreamFailureError: If Stripe errors or the call exceeds the timeout
        """
        amount_minor = to_minor_units(amount)

        try:
            intent = await asyncio.wait_for(
                self.retry_scheduler.retry_with_backoff(
                    self._create_intent,
                    amount_minor,
                    currency,
                    metadata.to_metadata(),
                    idempotency_key,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Payment intent creation timed out after {self.timeout_seconds}s",
                extra={"lease_id": str(metadata.lease_id)},
            )
            raise UpstreamFailureError("Payment provider timed out")
        except stripe.StripeError as e:
            logger.error(
                f"Payment intent creation failed: {e}",
                extra={"lease_id": str(metadata.lease_id)},
            )
            raise UpstreamFailureError(
                f"Payment provider error: {e.user_message or type(e).__name__}"
            )

        logger.info(
            f"Created payment intent {intent.id} for {amount_minor} {currency} "
            f"({metadata.action})",
            extra={"lease_id": str(metadata.lease_id)},
        )

        return PaymentIntentHandle(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=amount_minor,
            currency=currency,
        )

    async def _create_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict,
        idempotency_key: Optional[str],
    ):
        return await asyncio.to_thread(
            stripe.PaymentIntent.create,
            amount=amount_minor,
            currency=currency,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
            api_key=self.api_key,
            idempotency_key=idempotency_key,
        )

    def verify_and_parse_webhook(
        self,
        raw_body: bytes,
        signature_header: Optional[str],
        secret: Optional[str],
    ) -> GatewayEvent:
        """
        Verify the Stripe-Signature header, then parse the body.

        The body is not decoded as JSON until the signature has been
        checked against the secret.

        Raises:
            ConfigurationError: If no webhook secret is configured
            WebhookVerificationError: If the signature is missing or invalid
        """
        if not secret:
            logger.error("Webhook secret is not configured")
            raise ConfigurationError("Webhook secret is not configured")

        if not signature_header:
            raise WebhookVerificationError("Missing webhook signature")

        try:
            payload = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        except UnicodeDecodeError:
            raise WebhookVerificationError("Webhook body is not valid UTF-8")

        try:
            stripe.WebhookSignature.verify_header(
                payload,
                signature_header,
                secret,
                self.webhook_tolerance_seconds,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookVerificationError("Invalid webhook signature")

        try:
            body = json.loads(payload)
        except ValueError:
            raise WebhookVerificationError("Malformed webhook body")

        if not isinstance(body, dict):
            raise WebhookVerificationError("Malformed webhook body")

        return parse_gateway_event(body)


payment_gateway = StripePaymentGateway()


def get_payment_gateway() -> StripePaymentGateway:
    """Dependency for FastAPI to get the payment gateway."""
    return payment_gateway
