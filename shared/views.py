"""Read models shared by the API and the cache layer."""

from pydantic import BaseModel, ConfigDict, field_validator
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


class CarView(BaseModel):
    """Public view of a car."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    brand: str
    model_name: str
    year: Optional[int] = None
    price_per_day: Decimal
    available: bool


class LeaseView(BaseModel):
    """Public view of a lease."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    car_id: UUID
    start_date: datetime
    end_date: datetime
    total_amount: Decimal
    status: str
    is_returned: bool
    returned_date: Optional[datetime] = None
    payment_id: Optional[str] = None
    last_reminder_sent_at: Optional[datetime] = None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, value):
        return getattr(value, "value", value)


class PaymentHistoryView(BaseModel):
    """A user's lease payment summary."""

    total_leases: int
    total_paid: int
    total_pending: int
    total_cancelled: int
    total_amount_paid: Decimal
    leases: List[LeaseView]
