"""Celery tasks delivering lease emails."""

import logging

from shared.celery_app import celery_app
from shared.retry_manager import NOTIFICATION_RETRY_CONFIG
from services.notification_service.domain.email_backend import email_backend
from services.notification_service.domain.email_templates import render_lease_email

logger = logging.getLogger(__name__)


@celery_app.task(
    name="notifications.send_lease_email",
    bind=True,
    max_retries=NOTIFICATION_RETRY_CONFIG.max_retries,
)
def send_lease_email(self, job_name: str, payload: dict) -> dict:
    """
    Render and hand off one lease email.

    Delivery failures are retried with exponential backoff. A payload that
    cannot be rendered is dropped without retry.
    """
    try:
        message = render_lease_email(job_name, payload)
    except ValueError as e:
        logger.error(f"Dropping {job_name} job: {e}")
        return {"status": "dropped", "job": job_name, "error": str(e)}

    try:
        email_backend.send(message)
    except Exception as exc:
        countdown = NOTIFICATION_RETRY_CONFIG.calculate_delay(self.request.retries)
        logger.warning(
            f"{job_name} delivery failed (attempt {self.request.retries + 1}), "
            f"retrying in {countdown:.0f}s: {exc}",
            extra={"lease_id": payload.get("leaseId")},
        )
        raise self.retry(exc=exc, countdown=countdown)

    return {
        "status": "sent",
        "job": job_name,
        "lease_id": payload.get("leaseId"),
        "to": message.to,
    }
