from typing import Optional, List
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.audit import AuditEntry
from .base import BaseRepository


class AuditRepository(BaseRepository[AuditEntry]):
    """Repository for the append-only admin activity log."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AuditEntry)

    async def append(
        self,
        action: str,
        user_id: str,
        description: str,
        lease_id: Optional[UUID] = None,
        car_id: Optional[UUID] = None,
    ) -> AuditEntry:
        """Append an entry (insert-only)."""
        entry = AuditEntry(
            action=action,
            user_id=user_id,
            lease_id=lease_id,
            car_id=car_id,
            description=description,
        )
        return await self.create(entry)

    async def get_recent(
        self,
        action: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEntry]:
        """Newest entries first, optionally filtered by action."""
        stmt = self._select()
        if action:
            stmt = stmt.where(self.model.action == action)
        stmt = stmt.order_by(self.model.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_lease_history(
        self,
        lease_id: UUID,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEntry]:
        """All entries for a lease in chronological order."""
        stmt = (
            self._select()
            .where(self.model.lease_id == lease_id)
            .order_by(self.model.id)
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_by_action(self, action: str) -> int:
        """Count entries of one action."""
        stmt = select(func.count(self.model.id)).where(
            self.model.action == action
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def delete(self, id: int) -> bool:
        """Override delete to prevent deletion from append-only log."""
        raise NotImplementedError(
            "Cannot delete from append-only audit log."
        )

    async def update(self, id: int, **kwargs) -> Optional[AuditEntry]:
        """Override update to prevent updates to append-only log."""
        raise NotImplementedError(
            "Cannot update append-only audit log."
        )
