from sqlalchemy import (
    Column, String, Numeric, Integer, DateTime, Index,
    Enum as SQLEnum, ForeignKey
)
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
from uuid import uuid4
import enum

from shared.database.base import Base


class PaymentKind(str, enum.Enum):
    """What a payment intent pays for."""
    CREATE = "CREATE"
    EXTEND = "EXTEND"


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class LeasePayment(Base):
    """
    One payment intent issued for a lease.

    A PENDING row is a reservation hold: the car (or the extended end date)
    is held for the lease until the gateway confirms or the hold expires.
    """

    __tablename__ = "lease_payments"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    lease_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leases.id"),
        nullable=False,
        index=True,
    )

    payment_intent_id = Column(
        String(255),
        nullable=False,
        unique=True,
    )

    kind = Column(
        SQLEnum(PaymentKind),
        nullable=False,
    )

    amount = Column(
        Numeric(10, 2),
        nullable=False,
    )

    days = Column(
        Integer,
        nullable=False,
    )

    status = Column(
        SQLEnum(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )

    # Extension bookkeeping (EXTEND only)
    previous_end_date = Column(DateTime, nullable=True)
    new_end_date = Column(DateTime, nullable=True)

    # Hold deadline
    expires_at = Column(
        DateTime,
        nullable=False,
        index=True,
    )

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
        Index("idx_payment_lease_status", "lease_id", "status"),
        Index("idx_payment_status_expires", "status", "expires_at"),
    )

    def __repr__(self):
        return f"<LeasePayment(intent={self.payment_intent_id}, kind={self.kind}, status={self.status})>"
