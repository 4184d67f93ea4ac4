"""Celery beat tasks running the lease sweeps."""

import asyncio
import logging

from shared.celery_app import celery_app
from shared.database import task_session
from shared.event_bus import EventBusManager
from shared.redis_client import RedisClient
from services.lease_service.domain.lease_scheduler import LeaseScheduler

logger = logging.getLogger(__name__)


async def _run_sweep(sweep_name: str) -> dict:
    bus = EventBusManager()
    try:
        await bus.initialize()
    except Exception as e:
        logger.warning(f"Event bus unavailable for {sweep_name}, events will be dropped: {e}")

    try:
        async with task_session() as session:
            scheduler = LeaseScheduler(session, bus=bus)
            return await getattr(scheduler, sweep_name)()
    finally:
        await RedisClient.close()


@celery_app.task(name="lease.reminder_sweep")
def reminder_sweep() -> dict:
    """Enqueue reminders for leases ending within a day."""
    return asyncio.run(_run_sweep("reminder_sweep"))


@celery_app.task(name="lease.expiry_sweep")
def expiry_sweep() -> dict:
    """Expire overdue leases and free their cars."""
    return asyncio.run(_run_sweep("expiry_sweep"))


@celery_app.task(name="lease.release_expired_holds")
def release_expired_holds() -> dict:
    """Release payment holds past their deadline."""
    return asyncio.run(_run_sweep("release_expired_holds"))


@celery_app.task(
    name="lease.cleanup_idempotency_keys",
    autoretry_for=(Exception,),
    retry_kwargs={"max_retries": 3},
    retry_backoff=True,
)
def cleanup_idempotency_keys() -> dict:
    """Delete expired webhook idempotency markers."""
    return asyncio.run(_run_sweep("cleanup_idempotency_keys"))
