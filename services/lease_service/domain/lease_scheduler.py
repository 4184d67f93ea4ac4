"""Periodic lease sweeps: reminders, expiry, abandoned holds and key cleanup."""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shared.audit import format_date
from shared.cache import ALL_CARS_KEY, LeaseCache, user_leases_key
from shared.config import settings
from shared.event_bus import EventBusManager
from shared.models.lease import Lease, LeaseStatus
from shared.repositories.car import CarRepository
from shared.repositories.idempotency import IdempotencyRepository
from shared.repositories.lease import LeaseRepository
from shared.repositories.payment import PaymentRepository
from shared.views import CarView, LeaseView
from services.notification_service.domain.notification_dispatcher import (
    NotificationDispatcher,
    NotificationJob,
    notification_dispatcher,
)
from services.payment_service.domain.payment_service import PaymentReconciler
from .side_effects import LeaseSideEffects, describe_car

logger = logging.getLogger(__name__)


class LeaseScheduler:
    """
    Sweeps run by Celery beat.

    Each sweep works lease by lease, committing per lease, so one failure
    is logged and the rest of the batch still runs. Sweeps are idempotent
    and return a summary dict.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[LeaseCache] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        bus: Optional[EventBusManager] = None,
    ):
        self.session = session
        self.lease_repo = LeaseRepository(session)
        self.car_repo = CarRepository(session)
        self.payment_repo = PaymentRepository(session)
        self.idempotency_repo = IdempotencyRepository(session)
        self.cache = cache or LeaseCache()
        self.dispatcher = dispatcher or notification_dispatcher
        self.side_effects = LeaseSideEffects(session, self.cache, self.dispatcher, bus)
        self.reconciler = PaymentReconciler(session, self.cache, self.dispatcher, bus)

    async def reminder_sweep(self, now: Optional[datetime] = None) -> dict:
        """
        Remind users whose lease ends within the reminder window.

        A lease is reminded at most once per throttle period.
        """
        now = now or datetime.utcnow()
        window = timedelta(hours=settings.reminder_window_hours)
        throttle = timedelta(hours=settings.reminder_throttle_hours)

        candidates = await self.lease_repo.get_unreturned_ending_after(now)
        lease_ids = [lease.id for lease in candidates]

        summary = {"checked": len(lease_ids), "sent": 0, "throttled": 0, "errors": 0}

        for lease_id in lease_ids:
            try:
                lease = await self.lease_repo.get_by_id(lease_id)
                if lease is None or lease.end_date - now > window:
                    continue

                if (
                    lease.last_reminder_sent_at is not None
                    and now - lease.last_reminder_sent_at < throttle
                ):
                    summary["throttled"] += 1
                    continue

                car = await self.car_repo.get_by_id(lease.car_id)
                hours_left = max(1, math.ceil((lease.end_date - now).total_seconds() / 3600))

                task_id = await self.dispatcher.enqueue(
                    NotificationJob.LEASE_REMINDER,
                    lease.id,
                    lease.contact_email,
                    endDate=format_date(lease.end_date),
                    carModel=describe_car(car),
                    hoursLeft=hours_left,
                )
                if task_id is None:
                    continue

                await self.lease_repo.update(lease_id, last_reminder_sent_at=now)
                await self.session.commit()
                summary["sent"] += 1

            except Exception as e:
                logger.error(
                    f"Reminder failed for lease {lease_id}: {e}",
                    extra={"lease_id": str(lease_id)},
                )
                await self.session.rollback()
                summary["errors"] += 1

        logger.info(f"Reminder sweep finished: {summary}")
        return summary

    async def expiry_sweep(self, now: Optional[datetime] = None) -> dict:
        """Expire ACTIVE leases past their end date and free their cars."""
        now = now or datetime.utcnow()

        overdue = await self.lease_repo.get_overdue_active(now)
        lease_ids = [lease.id for lease in overdue]

        summary = {"checked": len(lease_ids), "expired": 0, "errors": 0}

        for lease_id in lease_ids:
            try:
                expired = await self.lease_repo.update_where(
                    lease_id,
                    [Lease.status == LeaseStatus.ACTIVE, Lease.end_date < now],
                    status=LeaseStatus.EXPIRED,
                )
                lease = await self.lease_repo.get_by_id(lease_id)
                if expired:
                    await self.car_repo.release_if_unleased(lease.car_id, exclude_lease_id=lease_id)
                await self.session.commit()

            except Exception as e:
                logger.error(
                    f"Expiry failed for lease {lease_id}: {e}",
                    extra={"lease_id": str(lease_id)},
                )
                await self.session.rollback()
                summary["errors"] += 1
                continue

            if not expired:
                continue

            summary["expired"] += 1
            logger.info(
                f"Lease {lease_id} expired, car {lease.car_id} released",
                extra={"lease_id": str(lease_id)},
            )

            user_id = lease.user_id
            await self.side_effects.lease_expired(lease)
            await self._refresh_listing_caches(user_id)

        logger.info(f"Expiry sweep finished: {summary}")
        return summary

    async def release_expired_holds(self, now: Optional[datetime] = None) -> dict:
        """Release reservation holds whose payment never settled."""
        now = now or datetime.utcnow()

        holds = await self.payment_repo.get_expired_holds(now)
        hold_ids = [hold.id for hold in holds]

        summary = {"checked": len(hold_ids), "released": 0, "errors": 0}

        for hold_id in hold_ids:
            try:
                hold = await self.payment_repo.get_by_id(hold_id)
                if hold is None:
                    continue
                outcome = await self.reconciler.release_expired_hold(hold, now)
            except Exception as e:
                logger.error(f"Failed to release hold {hold_id}: {e}")
                summary["errors"] += 1
                continue

            summary["released"] += 1
            summary[outcome] = summary.get(outcome, 0) + 1

        logger.info(f"Hold reaper finished: {summary}")
        return summary

    async def cleanup_idempotency_keys(self) -> dict:
        """Delete expired webhook idempotency markers."""
        try:
            deleted = await self.idempotency_repo.cleanup_expired()
            await self.session.commit()
        except Exception as e:
            logger.error(f"Idempotency key cleanup failed: {e}")
            await self.session.rollback()
            raise

        logger.info(f"Deleted {deleted} expired idempotency keys")
        return {"deleted": deleted}

    async def _refresh_listing_caches(self, user_id: str):
        """Repopulate the car list and the user's lease list after an expiry."""
        try:
            cars = await self.car_repo.list_cars()
            await self.cache.set_json(
                ALL_CARS_KEY,
                [CarView.model_validate(car).model_dump(mode="json") for car in cars],
            )

            leases = await self.lease_repo.get_by_user_id(user_id)
            if leases:
                await self.cache.set_json(
                    user_leases_key(user_id),
                    [LeaseView.model_validate(lease).model_dump(mode="json") for lease in leases],
                )
            else:
                await self.cache.delete(user_leases_key(user_id))
        except Exception as e:
            logger.warning(f"Failed to refresh cached listings for user {user_id}: {e}")
