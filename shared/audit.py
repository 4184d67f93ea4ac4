"""Admin activity recording."""

import logging
from datetime import datetime
from typing import Optional, Union
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from shared.repositories.audit import AuditRepository

logger = logging.getLogger(__name__)

# Actions
LEASE_REQUESTED = "Lease Requested"
LEASE_CREATED = "Lease Created"
LEASE_EXTENSION_REQUESTED = "Lease Extension Requested"
LEASE_EXTENDED = "Lease Extended"
LEASE_CANCELLED = "Lease Cancelled"
LEASE_EXTENSION_REVERTED = "Lease Extension Reverted"
CAR_RETURNED = "Car Returned"
LEASE_EXPIRED = "Lease Expired"
LEASE_DELETED = "Lease Deleted"
REFUND_REQUIRED = "Refund Required"
CAR_LISTED = "Car Listed"


def format_date(value: Union[datetime, str]) -> str:
    """dd/mm/yyyy, as shown on the admin dashboard."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime("%d/%m/%Y")


class AuditRecorder:
    """Appends admin activity entries and commits them on their own."""

    def __init__(self, db_session: AsyncSession):
        self.session = db_session
        self.repo = AuditRepository(db_session)

    async def record(
        self,
        action: str,
        user_id: str,
        description: str,
        lease_id: Optional[UUID] = None,
        car_id: Optional[UUID] = None,
    ) -> Optional[int]:
        """
        Append an entry and commit.

        Returns the entry id, or None if it could not be written. Audit
        writes happen after the lease transition has committed, so a
        failure here is logged and swallowed.
        """
        try:
            entry = await self.repo.append(
                action=action,
                user_id=user_id,
                description=description,
                lease_id=lease_id,
                car_id=car_id,
            )
            await self.repo.commit()

            logger.info(
                f"Recorded audit entry '{action}' (entry_id={entry.id})",
                extra={"lease_id": str(lease_id) if lease_id else None},
            )
            return entry.id

        except Exception as e:
            logger.error(f"Failed to record audit entry '{action}': {e}")
            await self.repo.rollback()
            return None
