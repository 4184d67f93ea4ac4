"""Email hand-off point. Transport is provided by the deployment."""

import logging

from .email_templates import EmailMessage

logger = logging.getLogger(__name__)


class LoggingEmailBackend:
    """Records outgoing mail in the worker log."""

    def send(self, message: EmailMessage) -> None:
        logger.info(
            f"Email '{message.subject}' handed off for {message.to}",
            extra={"to": message.to},
        )


email_backend = LoggingEmailBackend()
