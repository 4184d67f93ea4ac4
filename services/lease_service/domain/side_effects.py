"""
Post-commit side effects of lease transitions.

Runs after the transition has committed. Every step is best-effort: the
cache, the email queue, the audit log and the event bus each log their own
failures and none of them raise into the caller. The audit entry is written
last since a failed audit write rolls the session back.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shared import audit
from shared.audit import AuditRecorder, format_date
from shared.cache import LeaseCache
from shared.event_bus import EventBusManager, event_bus
from shared.events.schemas import (
    LeaseCancelledEvent,
    LeaseConfirmedEvent,
    LeaseExpiredEvent,
    LeaseExtendedEvent,
    LeaseReturnedEvent,
)
from shared.models.car import Car
from shared.models.lease import Lease
from services.notification_service.domain.notification_dispatcher import (
    NotificationDispatcher,
    NotificationJob,
    notification_dispatcher,
)

logger = logging.getLogger(__name__)


def describe_car(car: Optional[Car]) -> str:
    if car is None:
        return "car"
    return f"{car.brand} {car.model_name}"


class LeaseSideEffects:
    """Cache invalidation, emails, events and audit entries for one session."""

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[LeaseCache] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        bus: Optional[EventBusManager] = None,
    ):
        self.cache = cache or LeaseCache()
        self.dispatcher = dispatcher or notification_dispatcher
        self.bus = bus or event_bus
        self.recorder = AuditRecorder(session)

    async def lease_requested(self, lease: Lease, car: Optional[Car]):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.recorder.record(
            audit.LEASE_REQUESTED,
            lease.user_id,
            f"Lease requested for {describe_car(car)} from "
            f"{format_date(lease.start_date)} to {format_date(lease.end_date)}",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def extension_requested(
        self,
        lease: Lease,
        car: Optional[Car],
        additional_days: int,
    ):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.recorder.record(
            audit.LEASE_EXTENSION_REQUESTED,
            lease.user_id,
            f"Extension of {additional_days} day(s) requested for "
            f"{describe_car(car)} until {format_date(lease.end_date)}",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def lease_confirmed(self, lease: Lease, car: Optional[Car]):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.dispatcher.enqueue(
            NotificationJob.LEASE_CONFIRMATION,
            lease.id,
            lease.contact_email,
            startDate=format_date(lease.start_date),
            endDate=format_date(lease.end_date),
            carModel=describe_car(car),
        )
        await self.bus.publish_event(
            LeaseConfirmedEvent(
                lease_id=lease.id,
                user_id=lease.user_id,
                car_id=lease.car_id,
                start_date=lease.start_date,
                end_date=lease.end_date,
                total_amount=lease.total_amount,
            )
        )
        await self.recorder.record(
            audit.LEASE_CREATED,
            lease.user_id,
            f"Lease created for {describe_car(car)} from "
            f"{format_date(lease.start_date)} to {format_date(lease.end_date)}",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def lease_extended(self, lease: Lease, car: Optional[Car], amount: Decimal):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.dispatcher.enqueue(
            NotificationJob.LEASE_EXTENDED,
            lease.id,
            lease.contact_email,
            endDate=format_date(lease.end_date),
            carModel=describe_car(car),
        )
        await self.bus.publish_event(
            LeaseExtendedEvent(
                lease_id=lease.id,
                user_id=lease.user_id,
                car_id=lease.car_id,
                end_date=lease.end_date,
                extension_amount=amount,
            )
        )
        await self.recorder.record(
            audit.LEASE_EXTENDED,
            lease.user_id,
            f"Lease for {describe_car(car)} extended until "
            f"{format_date(lease.end_date)} (charge {amount})",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def lease_cancelled(self, lease: Lease, reason: str):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.bus.publish_event(
            LeaseCancelledEvent(
                lease_id=lease.id,
                user_id=lease.user_id,
                car_id=lease.car_id,
                reason=reason,
            )
        )
        await self.recorder.record(
            audit.LEASE_CANCELLED,
            lease.user_id,
            f"Lease cancelled: {reason}",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def extension_reverted(self, lease: Lease, reason: str):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.recorder.record(
            audit.LEASE_EXTENSION_REVERTED,
            lease.user_id,
            f"Extension reverted ({reason}); lease ends "
            f"{format_date(lease.end_date)}",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def lease_returned(self, lease: Lease, car: Optional[Car]):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.bus.publish_event(
            LeaseReturnedEvent(
                lease_id=lease.id,
                user_id=lease.user_id,
                car_id=lease.car_id,
                returned_date=lease.returned_date,
            )
        )
        await self.recorder.record(
            audit.CAR_RETURNED,
            lease.user_id,
            f"{describe_car(car)} returned on {format_date(lease.returned_date)}",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def lease_expired(self, lease: Lease):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.bus.publish_event(
            LeaseExpiredEvent(
                lease_id=lease.id,
                user_id=lease.user_id,
                car_id=lease.car_id,
                end_date=lease.end_date,
            )
        )
        await self.recorder.record(
            audit.LEASE_EXPIRED,
            lease.user_id,
            f"Lease expired on {format_date(lease.end_date)} without return",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def refund_required(self, lease: Lease, payment_intent_id: str, amount: Decimal):
        logger.warning(
            f"Payment {payment_intent_id} succeeded for a lease that can no "
            f"longer be honoured; refund required",
            extra={"lease_id": str(lease.id)},
        )
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.recorder.record(
            audit.REFUND_REQUIRED,
            lease.user_id,
            f"Payment {payment_intent_id} of {amount} received for "
            f"{lease.status.value} lease; refund required",
            lease_id=lease.id,
            car_id=lease.car_id,
        )

    async def lease_deleted(self, lease: Lease, admin_id: str):
        await self.cache.invalidate_lease(lease.id, lease.user_id, lease.car_id)
        await self.recorder.record(
            audit.LEASE_DELETED,
            admin_id,
            f"Lease of user {lease.user_id} deleted by admin",
            lease_id=lease.id,
            car_id=lease.car_id,
        )
