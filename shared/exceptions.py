"""
Exception types for the car lease backend.

Each error carries the HTTP status the API layer reports for it, so routes
can translate domain failures without knowing the business rules.
"""


class LeaseError(Exception):
    """Base class for lease and payment errors."""

    status_code: int = 400
    default_message: str = "Error: lease operation failed"

    def __init__(self, message: str = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class LeaseValidationError(LeaseError):
    """Raised for malformed input: bad date range, non-positive days, closed extension window."""

    status_code = 400
    default_message = "Error: invalid lease request"


class ForbiddenError(LeaseError):
    """Raised when a lease does not belong to the requesting user."""

    status_code = 403
    default_message = "Error: you are not allowed to modify this lease"


class NotFoundError(LeaseError):
    """Raised when a car or lease id cannot be found."""

    status_code = 404
    default_message = "Error: not found"


class ConflictError(LeaseError):
    """Raised when the car is unavailable, the lease overlaps, or the lease was already returned."""

    status_code = 409
    default_message = "Error: conflicting lease state"


class UpstreamFailureError(LeaseError):
    """Raised when the payment gateway fails or times out."""

    status_code = 502
    default_message = "Error: payment provider unavailable"


class WebhookVerificationError(LeaseError):
    """Raised when a webhook signature is missing or does not match."""

    status_code = 400
    default_message = "Error: invalid webhook signature"


class ConfigurationError(LeaseError):
    """Raised when required configuration (e.g. the webhook secret) is missing."""

    status_code = 500
    default_message = "Error: server misconfiguration"
