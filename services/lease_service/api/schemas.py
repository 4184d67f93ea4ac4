"""Request/response schemas for Lease API."""

from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from shared.views import CarView, LeaseView


class CreateLeaseRequest(BaseModel):
    """Request to lease a car."""

    car_id: UUID
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def drop_timezone(cls, v: datetime) -> datetime:
        # Stored as naive UTC
        if v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class CreateLeaseResponse(BaseModel):
    """Pending lease plus the secret the client pays with."""

    lease: LeaseView
    client_secret: Optional[str] = None


class ExtendLeaseRequest(BaseModel):
    """Request to extend an active lease."""

    additional_days: int = Field(..., gt=0, le=365)


class ExtendLeaseResponse(BaseModel):
    """Lease awaiting extension payment."""

    lease: LeaseView
    client_secret: Optional[str] = None
    extension_charge: Decimal


class LeaseListResponse(BaseModel):
    leases: List[LeaseView]
    total: int


class CreateCarRequest(BaseModel):
    """Admin request to list a car."""

    brand: str = Field(..., min_length=1, max_length=100)
    model_name: str = Field(..., min_length=1, max_length=100)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    price_per_day: Decimal = Field(..., gt=0, decimal_places=2)

    @field_validator("price_per_day", mode="before")
    @classmethod
    def validate_price(cls, v):
        if isinstance(v, (int, float)):
            return Decimal(str(v))
        return v


class CarListResponse(BaseModel):
    cars: List[CarView]
    total: int


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
