"""Lease email rendering."""

from pydantic import BaseModel

from shared.config import settings

SIGNATURE = "<p>Thank you for using City Car Center!</p>"


class EmailMessage(BaseModel):
    """A rendered email ready for delivery."""

    sender: str
    to: str
    subject: str
    html: str


def _confirmation(payload: dict) -> tuple[str, str]:
    return (
        "Your Lease Confirmation",
        "<p>Hi,</p>"
        "<p>Your lease has been confirmed.</p>"
        f"<p><strong>Start:</strong> {payload.get('startDate')}<br/>"
        f"<strong>End:</strong> {payload.get('endDate')}</p>"
        f"<p>Lease ID: {payload.get('leaseId')}</p>"
        f"{SIGNATURE}",
    )


def _extension(payload: dict) -> tuple[str, str]:
    return (
        "Your Lease Extension Confirmation",
        "<p>Hi,</p>"
        "<p>Your lease has been extended.</p>"
        f"<p><strong>End:</strong> {payload.get('endDate')}</p>"
        f"<p>Lease ID: {payload.get('leaseId')}</p>"
        f"{SIGNATURE}",
    )


def _reminder(payload: dict) -> tuple[str, str]:
    return (
        "Your lease is about to end",
        "<p>Hi there,</p>"
        f"<p>Your lease {payload.get('leaseId')} for the {payload.get('carModel', 'car')} "
        f"ends on {payload.get('endDate')} "
        f"({payload.get('hoursLeft')} hour(s) remaining).</p>"
        "<p>Please extend the lease or return the car in time.</p>"
        f"{SIGNATURE}",
    )


TEMPLATES = {
    "leaseConfirmationEmail": _confirmation,
    "leaseExtendedEmail": _extension,
    "leaseReminderEmail": _reminder,
}


def render_lease_email(job_name: str, payload: dict) -> EmailMessage:
    """
    Render the email for a notification job.

    Raises:
        ValueError: If the job name is unknown or the payload has no recipient
    """
    template = TEMPLATES.get(job_name)
    if template is None:
        raise ValueError(f"Unknown notification job: {job_name}")

    to = payload.get("to")
    if not to:
        raise ValueError(f"Notification {job_name} has no recipient")

    subject, html = template(payload)
    return EmailMessage(
        sender=settings.notification_sender,
        to=to,
        subject=subject,
        html=html,
    )
