from typing import Optional, List
from uuid import UUID
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.lease import Lease, LeaseStatus, OPEN_LEASE_STATUSES
from .base import BaseRepository


class LeaseRepository(BaseRepository[Lease]):
    """Repository for Lease operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Lease)

    async def get_by_user_id(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Lease]:
        """Get all leases for a user, newest first."""
        stmt = (
            self._select()
            .where(self.model.user_id == user_id)
            .order_by(self.model.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_overlapping(
        self,
        car_id: UUID,
        start_date: datetime,
        end_date: datetime,
    ) -> Optional[Lease]:
        """Find an open lease on the car whose dates intersect [start_date, end_date]."""
        stmt = (
            self._select()
            .where(
                (self.model.car_id == car_id)
                & (self.model.status.in_(OPEN_LEASE_STATUSES))
                & (self.model.start_date <= end_date)
                & (self.model.end_date >= start_date)
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_overdue_active(self, now: datetime, limit: int = 500) -> List[Lease]:
        """ACTIVE leases whose end date has passed."""
        stmt = (
            self._select()
            .where(
                (self.model.status == LeaseStatus.ACTIVE)
                & (self.model.end_date < now)
            )
            .order_by(self.model.end_date)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_unreturned_ending_after(
        self,
        now: datetime,
        limit: int = 500,
    ) -> List[Lease]:
        """Open, unreturned leases whose end date is still ahead."""
        stmt = (
            self._select()
            .where(
                (self.model.is_returned.is_(False))
                & (self.model.status.in_(OPEN_LEASE_STATUSES))
                & (self.model.end_date > now)
            )
            .order_by(self.model.end_date)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def transition(
        self,
        lease_id: UUID,
        from_statuses: tuple,
        **values,
    ) -> bool:
        """Update the lease only if its status is still one of from_statuses."""
        return await self.update_where(
            lease_id,
            [self.model.status.in_(from_statuses)],
            **values,
        )
