from sqlalchemy import (
    Column, String, Numeric, Boolean, DateTime, Index,
    Enum as SQLEnum, ForeignKey
)
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
from uuid import uuid4
import enum

from shared.database.base import Base


class LeaseStatus(str, enum.Enum):
    """Lease status enumeration."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# Statuses that keep the car unavailable
OPEN_LEASE_STATUSES = (LeaseStatus.PENDING, LeaseStatus.ACTIVE)


class Lease(Base):
    """Lease agreement between a user and a car."""

    __tablename__ = "leases"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    user_id = Column(
        String(255),
        nullable=False,
        index=True,
    )

    car_id = Column(
        UUID(as_uuid=True),
        ForeignKey("cars.id"),
        nullable=False,
        index=True,
    )

    contact_email = Column(
        String(255),
        nullable=True,
    )

    start_date = Column(DateTime, nullable=False)

    end_date = Column(
        DateTime,
        nullable=False,
        index=True,
    )

    # Sum of confirmed charges
    total_amount = Column(
        Numeric(10, 2),
        nullable=False,
    )

    status = Column(
        SQLEnum(LeaseStatus),
        nullable=False,
        default=LeaseStatus.PENDING,
        index=True,
    )

    is_returned = Column(
        Boolean,
        nullable=False,
        default=False,
    )

    returned_date = Column(DateTime, nullable=True)

    # Current payment intent (reassigned on extension)
    payment_id = Column(
        String(255),
        nullable=True,
        index=True,
    )

    last_reminder_sent_at = Column(DateTime, nullable=True)

    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    __table_args__ = (
        Index("idx_lease_user_status", "user_id", "status"),
        Index("idx_lease_car_status", "car_id", "status"),
        Index("idx_lease_status_end", "status", "end_date"),
    )

    def __repr__(self):
        return f"<Lease(id={self.id}, user_id={self.user_id}, car_id={self.car_id}, status={self.status})>"
