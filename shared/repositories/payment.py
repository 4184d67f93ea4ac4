from typing import Optional, List
from uuid import UUID
from datetime import datetime
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.payment import LeasePayment, PaymentStatus
from .base import BaseRepository


class PaymentRepository(BaseRepository[LeasePayment]):
    """Repository for lease payment intents (reservation holds)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, LeasePayment)

    async def get_by_intent_id(self, payment_intent_id: str) -> Optional[LeasePayment]:
        """Get the payment row for a gateway payment intent."""
        stmt = self._select().where(
            self.model.payment_intent_id == payment_intent_id
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_lease_id(
        self,
        lease_id: UUID,
        skip: int = 0,
        limit: int = 100
    ) -> List[LeasePayment]:
        """Get all payments for a lease in creation order."""
        stmt = (
            self._select()
            .where(self.model.lease_id == lease_id)
            .order_by(self.model.created_at)
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_pending_for_lease(self, lease_id: UUID) -> List[LeasePayment]:
        """Get unconfirmed holds for a lease."""
        stmt = self._select().where(
            (self.model.lease_id == lease_id)
            & (self.model.status == PaymentStatus.PENDING)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_expired_holds(self, now: datetime, limit: int = 500) -> List[LeasePayment]:
        """PENDING holds past their deadline."""
        stmt = (
            self._select()
            .where(
                (self.model.status == PaymentStatus.PENDING)
                & (self.model.expires_at <= now)
            )
            .order_by(self.model.expires_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def settle(
        self,
        payment_id: UUID,
        status: PaymentStatus,
    ) -> bool:
        """Move a PENDING hold to a final status. Returns False if already settled."""
        return await self.update_where(
            payment_id,
            [self.model.status == PaymentStatus.PENDING],
            status=status,
        )

    async def delete_for_lease(self, lease_id: UUID) -> int:
        """Delete all payment rows of a lease."""
        stmt = delete(self.model).where(self.model.lease_id == lease_id)
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount
