from .sweep_tasks import (
    reminder_sweep,
    expiry_sweep,
    release_expired_holds,
    cleanup_idempotency_keys,
)

__all__ = [
    "reminder_sweep",
    "expiry_sweep",
    "release_expired_holds",
    "cleanup_idempotency_keys",
]
