"""Lease period and pricing rules."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from shared.config import settings
from shared.exceptions import LeaseValidationError

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class LeasePricing:
    """Validates lease periods and computes charges."""

    @staticmethod
    def validate_first_lease_period(start_date: datetime, end_date: datetime) -> int:
        """
        Check that a first lease spans exactly the fixed number of days.

        Returns:
            Number of days leased

        Raises:
            LeaseValidationError: If start is after end or the span is wrong
        """
        if start_date > end_date:
            raise LeaseValidationError("Start date must be before end date")

        days = settings.first_lease_days
        if end_date - start_date != timedelta(days=days):
            raise LeaseValidationError(
                f"The first lease must be exactly {settings.first_lease_days} days"
            )

        return days

    @staticmethod
    def charge(price_per_day: Decimal, days: int) -> Decimal:
        """Price for days at the daily rate, rounded to cents."""
        if days <= 0:
            raise LeaseValidationError("Number of days must be greater than 0")

        return (Decimal(price_per_day) * days).quantize(CENTS)

    @staticmethod
    def validate_extension_window(end_date: datetime, now: datetime) -> timedelta:
        """
        Extensions are only allowed in the last day of a lease.

        Returns:
            Time left on the lease

        Raises:
            LeaseValidationError: If the lease has ended or more than a day is left
        """
        time_left = end_date - now
        window = timedelta(hours=settings.extension_window_hours)

        if time_left < timedelta(0) or time_left > window:
            raise LeaseValidationError(
                "Lease can only be extended when 1 day or less is remaining"
            )

        return time_left

    @staticmethod
    def extended_end_date(end_date: datetime, additional_days: int) -> datetime:
        if additional_days <= 0:
            raise LeaseValidationError("Additional days must be greater than 0")

        return end_date + timedelta(days=additional_days)
