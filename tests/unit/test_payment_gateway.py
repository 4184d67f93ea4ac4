"""Unit tests for the Stripe gateway adapter and intent metadata."""

import asyncio
import json
import time
import pytest
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch
from uuid import uuid4

import stripe
from pydantic import ValidationError

from shared.exceptions import (
    ConfigurationError,
    UpstreamFailureError,
    WebhookVerificationError,
)
from shared.retry_manager import RetryConfig, RetryScheduler
from services.payment_service.domain.intents import (
    CreateLeaseIntent,
    ExtendLeaseIntent,
    parse_intent_metadata,
)
from services.payment_service.domain.payment_gateway import (
    StripePaymentGateway,
    parse_gateway_event,
    to_minor_units,
)

SECRET = "whsec_unit"


def _gateway(**kwargs):
    scheduler = RetryScheduler(
        RetryConfig(max_retries=1, base_delay_seconds=0, jitter=False),
        retry_on=(stripe.APIConnectionError, stripe.RateLimitError),
    )
    return StripePaymentGateway(api_key="sk_test_unit", retry_scheduler=scheduler, **kwargs)


def _create_metadata():
    return CreateLeaseIntent(
        user_id="user-1",
        car_id=uuid4(),
        lease_id=uuid4(),
        start_date=datetime(2026, 3, 1, 9, 0),
        end_date=datetime(2026, 3, 8, 9, 0),
        email="user1@example.com",
    )


class TestIntentMetadata:
    """Test the tagged metadata carried on payment intents."""

    def test_create_metadata_is_flat_strings(self):
        metadata = _create_metadata()

        flat = metadata.to_metadata()

        assert flat["action"] == "createLease"
        assert flat["userId"] == "user-1"
        assert flat["leaseId"] == str(metadata.lease_id)
        assert flat["startDate"] == "2026-03-01T09:00:00"
        assert all(isinstance(value, str) for value in flat.values())

    def test_parse_extension_metadata(self):
        lease_id = uuid4()
        parsed = parse_intent_metadata({
            "action": "extendLease",
            "userId": "user-1",
            "carId": str(uuid4()),
            "leaseId": str(lease_id),
            "additionalDays": "3",
            "newEndDate": "2026-03-11T09:00:00",
        })

        assert isinstance(parsed, ExtendLeaseIntent)
        assert parsed.lease_id == lease_id
        assert parsed.additional_days == 3

    def test_unknown_action_rejected(self):
        with pytest.raises(ValidationError):
            parse_intent_metadata({
                "action": "refundLease",
                "userId": "user-1",
                "carId": str(uuid4()),
                "leaseId": str(uuid4()),
            })

    def test_missing_fields_rejected(self):
        with pytest.raises(ValidationError):
            parse_intent_metadata({"action": "createLease", "userId": "user-1"})


class TestCreatePaymentIntent:
    """Test payment intent creation."""

    def test_minor_units(self):
        assert to_minor_units(Decimal("350.00")) == 35000
        assert to_minor_units(Decimal("10.005")) == 1001

    @pytest.mark.asyncio
    async def test_create_intent(self):
        intent = SimpleNamespace(id="pi_123", client_secret="pi_123_secret")
        metadata = _create_metadata()

        with patch.object(stripe.PaymentIntent, "create", MagicMock(return_value=intent)) as create:
            handle = await _gateway().create_payment_intent(
                Decimal("350.00"), "usd", metadata, idempotency_key="lease-create-1"
            )

        assert handle.id == "pi_123"
        assert handle.client_secret == "pi_123_secret"
        assert handle.amount == 35000

        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 35000
        assert kwargs["currency"] == "usd"
        assert kwargs["metadata"]["action"] == "createLease"
        assert kwargs["idempotency_key"] == "lease-create-1"
        assert kwargs["api_key"] == "sk_test_unit"

    @pytest.mark.asyncio
    async def test_connection_error_is_retried(self):
        intent = SimpleNamespace(id="pi_retry", client_secret="secret")
        create = MagicMock(side_effect=[stripe.APIConnectionError("reset"), intent])

        with patch.object(stripe.PaymentIntent, "create", create):
            handle = await _gateway().create_payment_intent(
                Decimal("50.00"), "usd", _create_metadata()
            )

        assert handle.id == "pi_retry"
        assert create.call_count == 2

    @pytest.mark.asyncio
    async def test_stripe_error_becomes_upstream_failure(self):
        create = MagicMock(side_effect=stripe.InvalidRequestError("Amount too small", "amount"))

        with patch.object(stripe.PaymentIntent, "create", create):
            with pytest.raises(UpstreamFailureError):
                await _gateway().create_payment_intent(
                    Decimal("0.10"), "usd", _create_metadata()
                )

        assert create.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_upstream_failure(self):
        gateway = _gateway(timeout_seconds=0.05)

        async def _slow(*args, **kwargs):
            await asyncio.sleep(1)

        with patch.object(gateway, "_create_intent", _slow):
            with pytest.raises(UpstreamFailureError, match="timed out"):
                await gateway.create_payment_intent(
                    Decimal("350.00"), "usd", _create_metadata()
                )


class TestWebhookVerification:
    """Test webhook signature verification."""

    def _body(self):
        return json.dumps({
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "metadata": {"action": "createLease"}}},
        })

    def test_valid_signature(self, webhook_signer):
        payload = self._body()

        event = _gateway().verify_and_parse_webhook(
            payload.encode("utf-8"), webhook_signer(payload, SECRET), SECRET
        )

        assert event.type == "payment_intent.succeeded"
        assert event.payment_intent.id == "pi_1"
        assert event.payment_intent.metadata == {"action": "createLease"}

    def test_tampered_body_rejected(self, webhook_signer):
        payload = self._body()
        header = webhook_signer(payload, SECRET)

        with pytest.raises(WebhookVerificationError):
            _gateway().verify_and_parse_webhook(
                payload.replace("pi_1", "pi_2").encode("utf-8"), header, SECRET
            )

    def test_wrong_secret_rejected(self, webhook_signer):
        payload = self._body()

        with pytest.raises(WebhookVerificationError):
            _gateway().verify_and_parse_webhook(
                payload.encode("utf-8"), webhook_signer(payload, "whsec_other"), SECRET
            )

    def test_stale_timestamp_rejected(self, webhook_signer):
        payload = self._body()
        header = webhook_signer(payload, SECRET, timestamp=int(time.time()) - 3600)

        with pytest.raises(WebhookVerificationError):
            _gateway(webhook_tolerance_seconds=300).verify_and_parse_webhook(
                payload.encode("utf-8"), header, SECRET
            )

    def test_missing_signature_rejected(self):
        with pytest.raises(WebhookVerificationError, match="Missing"):
            _gateway().verify_and_parse_webhook(self._body().encode("utf-8"), None, SECRET)

    def test_missing_secret_is_configuration_error(self, webhook_signer):
        payload = self._body()

        with pytest.raises(ConfigurationError):
            _gateway().verify_and_parse_webhook(
                payload.encode("utf-8"), webhook_signer(payload, SECRET), None
            )

    def test_non_object_body_rejected(self, webhook_signer):
        payload = "[1, 2, 3]"

        with pytest.raises(WebhookVerificationError, match="Malformed"):
            _gateway().verify_and_parse_webhook(
                payload.encode("utf-8"), webhook_signer(payload, SECRET), SECRET
            )


class TestParseGatewayEvent:
    """Test event parsing after verification."""

    def test_non_intent_event_has_no_payment_intent(self):
        event = parse_gateway_event({
            "id": "evt_2",
            "type": "charge.refunded",
            "data": {"object": {"id": "ch_1"}},
        })

        assert event.type == "charge.refunded"
        assert event.payment_intent is None

    def test_missing_data(self):
        event = parse_gateway_event({"id": "evt_3", "type": "payment_intent.succeeded"})

        assert event.payment_intent is None
