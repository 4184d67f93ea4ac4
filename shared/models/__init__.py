from .car import Car
from .lease import Lease, LeaseStatus
from .payment import LeasePayment, PaymentKind, PaymentStatus
from .audit import AuditEntry
from .idempotency import IdempotencyKey

__all__ = [
    "Car",
    "Lease",
    "LeaseStatus",
    "LeasePayment",
    "PaymentKind",
    "PaymentStatus",
    "AuditEntry",
    "IdempotencyKey",
]
