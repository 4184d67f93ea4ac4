from typing import Optional
from datetime import datetime, timedelta
from sqlalchemy import delete, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.idempotency import IdempotencyKey
from .base import BaseRepository


def webhook_event_key(payment_intent_id: str, event_type: str) -> str:
    """Idempotency key for one gateway event on one payment intent."""
    return f"{payment_intent_id}:{event_type}"


class IdempotencyRepository(BaseRepository[IdempotencyKey]):
    """Repository for processed-operation markers."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, IdempotencyKey)

    async def get_by_id(self, key: str) -> Optional[IdempotencyKey]:
        """Get an idempotency key by key string (overrides base to use key column)."""
        stmt = self._select().where(self.model.key == key)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def update(self, key: str, **kwargs) -> Optional[IdempotencyKey]:
        """Update an idempotency key (overrides base to use key column)."""
        stmt = (
            sql_update(self.model)
            .where(self.model.key == key)
            .values(**kwargs)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return await self.get_by_id(key)

    async def check_and_store(
        self,
        key: str,
        operation: str,
        result_payload: Optional[dict] = None,
        ttl_seconds: int = 86400,
    ) -> tuple[bool, Optional[dict]]:
        """
        Check if the key was already processed, mark it if not.

        The marker is written in the caller's transaction, so it only
        survives if the caller commits the work it guards.

        Returns:
            (is_duplicate, recorded_result)
            - If key exists: (True, recorded_result)
            - If key is new: (False, None)
        """
        existing = await self.get_by_id(key)

        if existing:
            if existing.expires_at > datetime.utcnow():
                return (True, existing.result_payload)
            # Expired marker, treat as new
            await self.delete(key)

        expires_at = datetime.utcnow() + timedelta(seconds=ttl_seconds)
        entry = IdempotencyKey(
            key=key,
            operation=operation,
            result_payload=result_payload,
            expires_at=expires_at,
        )
        await self.create(entry)

        return (False, None)

    async def store_result(
        self,
        key: str,
        result_payload: dict
    ) -> Optional[IdempotencyKey]:
        """Record the outcome for an idempotency key."""
        return await self.update(key, result_payload=result_payload)

    async def cleanup_expired(self) -> int:
        """Delete all expired idempotency keys. Returns count deleted."""
        stmt = delete(self.model).where(
            self.model.expires_at <= datetime.utcnow()
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount

    async def delete(self, key: str) -> bool:
        """Delete an idempotency key."""
        stmt = delete(self.model).where(self.model.key == key)
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0
