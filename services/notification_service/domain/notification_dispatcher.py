"""Fire-and-forget enqueueing of lease emails."""

import asyncio
import enum
import logging
from typing import Optional
from uuid import UUID

from celery import Celery

from shared.celery_app import celery_app

logger = logging.getLogger(__name__)

SEND_LEASE_EMAIL_TASK = "notifications.send_lease_email"


class NotificationJob(str, enum.Enum):
    """Email job names."""
    LEASE_CONFIRMATION = "leaseConfirmationEmail"
    LEASE_EXTENDED = "leaseExtendedEmail"
    LEASE_REMINDER = "leaseReminderEmail"


class NotificationDispatcher:
    """Publishes email jobs to the Celery queue."""

    def __init__(self, app: Optional[Celery] = None):
        self.app = app or celery_app

    async def enqueue(
        self,
        job: NotificationJob,
        lease_id: UUID,
        to: Optional[str],
        **details,
    ) -> Optional[str]:
        """
        Enqueue an email job.

        Args:
            job: Which email to send
            lease_id: Lease the email is about
            to: Recipient address
            **details: Template fields (startDate, endDate, carModel, hoursLeft)

        Returns:
            Celery task id, or None if nothing was enqueued
        """
        if not to:
            logger.warning(
                f"Skipping {job.value}: no recipient",
                extra={"lease_id": str(lease_id)},
            )
            return None

        payload = {"leaseId": str(lease_id), "to": to}
        payload.update({k: str(v) for k, v in details.items() if v is not None})

        try:
            result = await asyncio.to_thread(
                self.app.send_task,
                SEND_LEASE_EMAIL_TASK,
                kwargs={"job_name": job.value, "payload": payload},
            )
        except Exception as e:
            logger.error(
                f"Failed to enqueue {job.value}: {e}",
                extra={"lease_id": str(lease_id)},
            )
            return None

        logger.info(
            f"Enqueued {job.value} (task_id={result.id})",
            extra={"lease_id": str(lease_id)},
        )
        return result.id


notification_dispatcher = NotificationDispatcher()
