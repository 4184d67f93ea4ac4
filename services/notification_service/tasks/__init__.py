from .email_tasks import send_lease_email

__all__ = [
    "send_lease_email",
]
