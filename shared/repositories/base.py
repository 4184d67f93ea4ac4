from typing import Generic, TypeVar, Optional, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from shared.database.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Base repository class with common CRUD operations."""

    def __init__(self, session: AsyncSession, model: type[T]):
        self.session = session
        self.model = model

    def _select(self):
        """Select this model, overwriting stale identity-map state."""
        return select(self.model).execution_options(populate_existing=True)

    async def get_by_id(self, id: Any) -> Optional[T]:
        """Get a record by ID."""
        stmt = self._select().where(self.model.id == id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create(self, obj: T) -> T:
        """Create a new record."""
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def update(self, id: Any, **kwargs) -> Optional[T]:
        """Update a record by ID."""
        stmt = (
            update(self.model)
            .where(self.model.id == id)
            .values(**kwargs)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return await self.get_by_id(id)

    async def update_where(self, id: Any, conditions: list, **kwargs) -> bool:
        """
        Conditionally update a single record.

        The row is only written if every condition still holds at write
        time. Returns True if the row was updated.
        """
        stmt = (
            update(self.model)
            .where(self.model.id == id, *conditions)
            .values(**kwargs)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount == 1

    async def delete(self, id: Any) -> bool:
        """Delete a record by ID."""
        stmt = delete(self.model).where(self.model.id == id)
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def commit(self):
        """Commit the current transaction."""
        await self.session.commit()

    async def rollback(self):
        """Rollback the current transaction."""
        await self.session.rollback()
