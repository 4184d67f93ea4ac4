"""Request/response schemas for the payment webhook."""

from typing import Optional

from pydantic import BaseModel


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to the payment gateway."""

    received: bool = True
    status: str
    event_type: str
    outcome: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
