import hashlib
import hmac
import json
import os
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(scope="function")
async def test_db_engine():
    """Create a test database engine."""
    # Use SQLite for testing (in-memory)
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
    )

    # Create tables
    from shared.database.base import Base
    import shared.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Cleanup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
async def test_db_session(test_db_engine):
    """Create a test database session."""
    SessionLocal = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with SessionLocal() as session:
        yield session


class InMemoryRedis:
    """The subset of redis.asyncio.Redis used by the cache and event bus."""

    def __init__(self):
        self.store = {}
        self.published = []

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def ping(self):
        return True


class FakePaymentGateway:
    """Records payment intents instead of calling Stripe."""

    def __init__(self):
        self.intents = []
        self.fail_with: Optional[Exception] = None

    async def create_payment_intent(self, amount, currency, metadata, idempotency_key=None):
        from services.payment_service.domain.payment_gateway import (
            PaymentIntentHandle,
            to_minor_units,
        )

        if self.fail_with is not None:
            raise self.fail_with

        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append({
            "id": intent_id,
            "amount": amount,
            "currency": currency,
            "metadata": metadata.to_metadata(),
            "idempotency_key": idempotency_key,
        })
        return PaymentIntentHandle(
            id=intent_id,
            client_secret=f"{intent_id}_secret",
            amount=to_minor_units(amount),
            currency=currency,
        )

    def verify_and_parse_webhook(self, raw_body, signature_header, secret):
        from services.payment_service.domain.payment_gateway import StripePaymentGateway

        return StripePaymentGateway(api_key="sk_test").verify_and_parse_webhook(
            raw_body, signature_header, secret
        )


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    return AsyncMock()


@pytest.fixture
def memory_redis():
    return InMemoryRedis()


@pytest.fixture
def lease_cache(memory_redis):
    from shared.cache import LeaseCache

    return LeaseCache(redis_client=memory_redis, ttl_seconds=60)


@pytest.fixture
def fake_gateway():
    return FakePaymentGateway()


@pytest.fixture
def mock_dispatcher():
    """Notification dispatcher that records enqueued jobs."""
    dispatcher = MagicMock()
    dispatcher.enqueue = AsyncMock(return_value="task-123")
    return dispatcher


@pytest.fixture
def mock_event_bus():
    """Create a mock event bus."""
    bus = MagicMock()
    bus.publish_event = AsyncMock(return_value=True)
    return bus


@pytest.fixture
def lease_service(test_db_session, fake_gateway, lease_cache, mock_dispatcher, mock_event_bus):
    from services.lease_service.domain.lease_service import LeaseService

    return LeaseService(
        test_db_session,
        gateway=fake_gateway,
        cache=lease_cache,
        dispatcher=mock_dispatcher,
        bus=mock_event_bus,
    )


@pytest.fixture
def reconciler(test_db_session, lease_cache, mock_dispatcher, mock_event_bus):
    from services.payment_service.domain.payment_service import PaymentReconciler

    return PaymentReconciler(
        test_db_session,
        cache=lease_cache,
        dispatcher=mock_dispatcher,
        bus=mock_event_bus,
    )


@pytest.fixture
def make_car(test_db_session):
    """Factory inserting a car."""
    from shared.models.car import Car

    async def _make_car(price_per_day="50.00", available=True, brand="Toyota", model_name="Corolla"):
        car = Car(
            brand=brand,
            model_name=model_name,
            year=2022,
            price_per_day=Decimal(price_per_day),
            available=available,
        )
        test_db_session.add(car)
        await test_db_session.commit()
        return car

    return _make_car


@pytest.fixture
def make_active_lease(test_db_session):
    """Factory inserting a paid, ACTIVE lease (car marked unavailable)."""
    from shared.models.lease import Lease, LeaseStatus
    from shared.models.payment import LeasePayment, PaymentKind, PaymentStatus
    from shared.repositories.car import CarRepository

    async def _make_active_lease(car, start_date, days=7, user_id="user-1", email="user1@example.com"):
        end_date = start_date + timedelta(days=days)
        total = (Decimal(car.price_per_day) * days).quantize(Decimal("0.01"))
        payment_id = f"pi_seed_{uuid4().hex[:8]}"

        lease = Lease(
            user_id=user_id,
            car_id=car.id,
            contact_email=email,
            start_date=start_date,
            end_date=end_date,
            total_amount=total,
            status=LeaseStatus.ACTIVE,
            is_returned=False,
            payment_id=payment_id,
        )
        test_db_session.add(lease)
        await test_db_session.flush()

        test_db_session.add(
            LeasePayment(
                lease_id=lease.id,
                payment_intent_id=payment_id,
                kind=PaymentKind.CREATE,
                amount=total,
                days=days,
                status=PaymentStatus.SUCCEEDED,
                new_end_date=end_date,
                expires_at=start_date + timedelta(minutes=30),
            )
        )
        await CarRepository(test_db_session).mark_unavailable(car.id)
        await test_db_session.commit()
        return lease

    return _make_active_lease


def sign_webhook(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header for payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def webhook_body(event_type: str, intent_id: str, metadata: dict, amount: int = 0) -> dict:
    """Body of a payment_intent.* webhook event."""
    return {
        "id": f"evt_{uuid4().hex[:12]}",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "amount": amount,
                "currency": "usd",
                "status": event_type.split(".", 1)[1],
                "metadata": metadata,
            }
        },
    }


def gateway_event(event_type: str, intent: dict):
    """GatewayEvent for an intent recorded by FakePaymentGateway."""
    from services.payment_service.domain.payment_gateway import parse_gateway_event

    return parse_gateway_event(webhook_body(event_type, intent["id"], intent["metadata"]))


@pytest.fixture
def utcnow():
    return datetime.utcnow().replace(microsecond=0)


@pytest.fixture
async def api_client(test_db_session, fake_gateway, lease_cache, mock_dispatcher, mock_event_bus):
    """HTTP client against the app with infrastructure dependencies overridden."""
    from httpx import AsyncClient, ASGITransport

    from shared.database import get_db
    from services.lease_service.api.dependencies import (
        get_event_bus,
        get_lease_cache,
        get_notification_dispatcher,
        get_webhook_secret,
    )
    from services.lease_service.main import app
    from services.payment_service.domain.payment_gateway import get_payment_gateway

    async def _get_db():
        yield test_db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_lease_cache] = lambda: lease_cache
    app.dependency_overrides[get_notification_dispatcher] = lambda: mock_dispatcher
    app.dependency_overrides[get_event_bus] = lambda: mock_event_bus
    app.dependency_overrides[get_webhook_secret] = lambda: WEBHOOK_SECRET

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def json_dumps(body: dict) -> str:
    return json.dumps(body, separators=(",", ":"))


@pytest.fixture
def webhook_signer():
    return sign_webhook


@pytest.fixture
def webhook_factory():
    return webhook_body


@pytest.fixture
def event_factory():
    return gateway_event
