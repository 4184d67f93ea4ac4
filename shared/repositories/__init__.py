from .car import CarRepository
from .lease import LeaseRepository
from .payment import PaymentRepository
from .audit import AuditRepository
from .idempotency import IdempotencyRepository

__all__ = [
    "CarRepository",
    "LeaseRepository",
    "PaymentRepository",
    "AuditRepository",
    "IdempotencyRepository",
]
