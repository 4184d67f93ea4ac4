from typing import Optional, List
from uuid import UUID
from sqlalchemy import select, func, exists
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.car import Car
from shared.models.lease import Lease, OPEN_LEASE_STATUSES
from .base import BaseRepository


class CarRepository(BaseRepository[Car]):
    """Repository for Car availability operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Car)

    async def list_cars(
        self,
        skip: int = 0,
        limit: int = 100,
        available_only: bool = False,
    ) -> List[Car]:
        """List cars ordered by listing date."""
        stmt = self._select()
        if available_only:
            stmt = stmt.where(self.model.available.is_(True))
        stmt = stmt.order_by(self.model.created_at).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def reserve(self, car_id: UUID) -> bool:
        """
        Flip a car to unavailable only if it is still available.

        Returns False when another request reserved the car first.
        """
        return await self.update_where(
            car_id,
            [self.model.available.is_(True)],
            available=False,
        )

    async def mark_unavailable(self, car_id: UUID) -> Optional[Car]:
        """Set available = False (idempotent)."""
        return await self.update(car_id, available=False)

    async def count_available(self) -> int:
        """Count cars currently available."""
        stmt = select(func.count(self.model.id)).where(
            self.model.available.is_(True)
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def release_if_unleased(self, car_id: UUID, exclude_lease_id: Optional[UUID] = None) -> bool:
        """
        Set available = True unless another open lease still holds the car.

        Returns True if the car was released.
        """
        still_leased = (
            exists()
            .where(
                (Lease.car_id == self.model.id)
                & (Lease.status.in_(OPEN_LEASE_STATUSES))
                & (Lease.id != exclude_lease_id)
            )
            .correlate(self.model)
        )
        return await self.update_where(car_id, [~still_leased], available=True)
