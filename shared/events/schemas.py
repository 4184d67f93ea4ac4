"""Lease lifecycle events broadcast to real-time subscribers."""

from pydantic import BaseModel, Field
from datetime import datetime
from uuid import UUID, uuid4
from decimal import Decimal
from typing import Optional


class BaseEvent(BaseModel):
    """Base event schema with common fields."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    lease_id: UUID
    user_id: str
    car_id: UUID


class LeaseConfirmedEvent(BaseEvent):
    """Emitted when payment for a new lease is confirmed."""

    event_type: str = Field(default="LEASE_CONFIRMED")
    start_date: datetime
    end_date: datetime
    total_amount: Decimal


class LeaseExtendedEvent(BaseEvent):
    """Emitted when payment for an extension is confirmed."""

    event_type: str = Field(default="LEASE_EXTENDED")
    end_date: datetime
    extension_amount: Decimal


class LeaseCancelledEvent(BaseEvent):
    """Emitted when a lease hold is released without payment."""

    event_type: str = Field(default="LEASE_CANCELLED")
    reason: str


class LeaseReturnedEvent(BaseEvent):
    """Emitted when the user returns the car."""

    event_type: str = Field(default="LEASE_RETURNED")
    returned_date: datetime


class LeaseExpiredEvent(BaseEvent):
    """Emitted when the expiry sweep closes an unreturned lease."""

    event_type: str = Field(default="LEASE_EXPIRED")
    end_date: datetime
    expired_at: Optional[datetime] = Field(default_factory=datetime.utcnow)
