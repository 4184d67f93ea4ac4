from .schemas import (
    BaseEvent,
    LeaseConfirmedEvent,
    LeaseExtendedEvent,
    LeaseCancelledEvent,
    LeaseReturnedEvent,
    LeaseExpiredEvent,
)

__all__ = [
    "BaseEvent",
    "LeaseConfirmedEvent",
    "LeaseExtendedEvent",
    "LeaseCancelledEvent",
    "LeaseReturnedEvent",
    "LeaseExpiredEvent",
]
