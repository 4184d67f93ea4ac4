"""Reconciliation of payment gateway events into lease and car state."""

import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.cache import LeaseCache
from shared.config import settings
from shared.event_bus import EventBusManager
from shared.models.lease import Lease, LeaseStatus
from shared.models.payment import LeasePayment, PaymentKind, PaymentStatus
from shared.repositories.car import CarRepository
from shared.repositories.idempotency import IdempotencyRepository, webhook_event_key
from shared.repositories.lease import LeaseRepository
from shared.repositories.payment import PaymentRepository
from services.lease_service.domain.side_effects import LeaseSideEffects
from services.notification_service.domain.notification_dispatcher import (
    NotificationDispatcher,
)
from .intents import ExtendLeaseIntent, parse_intent_metadata
from .payment_gateway import GatewayEvent

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
PAYMENT_CANCELED = "payment_intent.canceled"
PAYMENT_CREATED = "payment_intent.created"

HANDLED_EVENT_TYPES = (PAYMENT_SUCCEEDED, PAYMENT_FAILED, PAYMENT_CANCELED, PAYMENT_CREATED)


class Outcome:
    """What a reconciled event did to its lease."""
    ACTIVATED = "activated"
    REACTIVATED = "reactivated"
    EXTENDED = "extended"
    CANCELLED = "cancelled"
    REVERTED = "reverted"
    EXPIRED = "expired"
    REFUND_REQUIRED = "refund_required"
    NOOP = "noop"


class PaymentReconciler:
    """Applies verified gateway events to leases, holds and cars."""

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
        self.side_effects = LeaseSideEffects(session, cache, dispatcher, bus)

    async def reconcile_payment_event(
        self,
        event: GatewayEvent,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Apply one webhook event.

        The transition and the idempotency marker commit together. Side
        effects run only after that commit.

        Returns:
            Summary dict with ``status`` of processed, duplicate or ignored

        Raises:
            Exception: Database errors propagate so the gateway redelivers
        """
        now = now or datetime.utcnow()
        intent = event.payment_intent

        if event.type not in HANDLED_EVENT_TYPES or intent is None:
            logger.info(f"Ignoring gateway event {event.id} of type {event.type}")
            return {"status": "ignored", "event_type": event.type}

        try:
            metadata = parse_intent_metadata(intent.metadata)
        except ValidationError as e:
            logger.warning(
                f"Ignoring {event.type} for {intent.id}: unrecognised metadata ({e.error_count()} errors)"
            )
            return {"status": "ignored", "event_type": event.type, "reason": "metadata"}

        expected_kind = (
            PaymentKind.EXTEND
            if isinstance(metadata, ExtendLeaseIntent)
            else PaymentKind.CREATE
        )
        hold = await self.payment_repo.get_by_intent_id(intent.id)
        if (
            hold is None
            or hold.lease_id != metadata.lease_id
            or hold.kind != expected_kind
        ):
            logger.warning(
                f"Ignoring {event.type}: no hold for intent {intent.id}",
                extra={"lease_id": str(metadata.lease_id)},
            )
            return {"status": "ignored", "event_type": event.type, "reason": "unknown_intent"}

        if event.type == PAYMENT_CREATED:
            lease = await self.lease_repo.get_by_id(hold.lease_id)
            pending = lease is not None and lease.status == LeaseStatus.PENDING
            logger.info(
                f"Payment intent {intent.id} created (lease pending: {pending})",
                extra={"lease_id": str(hold.lease_id)},
            )
            return {"status": "processed", "event_type": event.type, "outcome": Outcome.NOOP}

        key = webhook_event_key(intent.id, event.type)
        lease_id = hold.lease_id

        try:
            is_duplicate, recorded = await self.idempotency_repo.check_and_store(
                key=key,
                operation=event.type,
                ttl_seconds=settings.webhook_idempotency_ttl_seconds,
            )
            if is_duplicate:
                logger.info(
                    f"Duplicate gateway event {key}, skipping",
                    extra={"lease_id": str(lease_id)},
                )
                await self.session.commit()
                return {
                    "status": "duplicate",
                    "event_type": event.type,
                    "outcome": (recorded or {}).get("outcome"),
                }

            if event.type == PAYMENT_SUCCEEDED:
                outcome = await self._apply_success(hold, now)
            else:
                failed_status = (
                    PaymentStatus.FAILED
                    if event.type == PAYMENT_FAILED
                    else PaymentStatus.CANCELLED
                )
                outcome = await self._apply_release(hold, failed_status, now)

            await self.idempotency_repo.store_result(key, {"outcome": outcome})
            await self.session.commit()

        except Exception as e:
            logger.error(
                f"Failed to reconcile {event.type} for {intent.id}: {e}",
                extra={"lease_id": str(lease_id)},
            )
            await self.session.rollback()
            raise

        logger.info(
            f"Reconciled {event.type} for {intent.id}: {outcome}",
            extra={"lease_id": str(hold.lease_id)},
        )

        await self._after_commit(outcome, hold, reason=event.type)

        return {"status": "processed", "event_type": event.type, "outcome": outcome}

    async def release_expired_hold(self, hold: LeasePayment, now: Optional[datetime] = None) -> str:
        """
        Release a hold whose deadline passed without a gateway verdict.

        Commits on its own and runs the same side effects as a failed payment.
        """
        now = now or datetime.utcnow()
        intent_id = hold.payment_intent_id
        lease_id = hold.lease_id
        try:
            outcome = await self._apply_release(hold, PaymentStatus.CANCELLED, now)
            await self.session.commit()
        except Exception as e:
            logger.error(
                f"Failed to release hold {intent_id}: {e}",
                extra={"lease_id": str(lease_id)},
            )
            await self.session.rollback()
            raise

        await self._after_commit(outcome, hold, reason="payment hold expired")
        return outcome

    async def _apply_success(self, hold: LeasePayment, now: datetime) -> str:
        lease = await self.lease_repo.get_by_id(hold.lease_id)
        if lease is None:
            await self.payment_repo.update(hold.id, status=PaymentStatus.SUCCEEDED)
            return Outcome.NOOP

        if hold.kind == PaymentKind.CREATE:
            outcome = await self._confirm_create(lease, hold)
        else:
            outcome = await self._confirm_extension(lease, hold)

        await self.payment_repo.update(hold.id, status=PaymentStatus.SUCCEEDED)
        return outcome

    async def _confirm_create(self, lease: Lease, hold: LeasePayment) -> str:
        if lease.status == LeaseStatus.PENDING:
            activated = await self.lease_repo.transition(
                lease.id,
                (LeaseStatus.PENDING,),
                status=LeaseStatus.ACTIVE,
                payment_id=hold.payment_intent_id,
            )
            if activated:
                await self.car_repo.mark_unavailable(lease.car_id)
                return Outcome.ACTIVATED
            lease = await self.lease_repo.get_by_id(lease.id)

        if lease.status == LeaseStatus.CANCELLED and not lease.is_returned:
            if await self.car_repo.reserve(lease.car_id):
                await self.lease_repo.transition(
                    lease.id,
                    (LeaseStatus.CANCELLED,),
                    status=LeaseStatus.ACTIVE,
                    payment_id=hold.payment_intent_id,
                )
                return Outcome.REACTIVATED
            return Outcome.REFUND_REQUIRED

        if lease.status == LeaseStatus.ACTIVE:
            return Outcome.NOOP

        return Outcome.REFUND_REQUIRED

    async def _confirm_extension(self, lease: Lease, hold: LeasePayment) -> str:
        total = lease.total_amount + hold.amount

        if lease.status == LeaseStatus.PENDING and lease.payment_id == hold.payment_intent_id:
            extended = await self.lease_repo.transition(
                lease.id,
                (LeaseStatus.PENDING,),
                status=LeaseStatus.ACTIVE,
                end_date=hold.new_end_date,
                total_amount=total,
            )
            if extended:
                return Outcome.EXTENDED

        # Late success after the hold was reverted
        if (
            hold.status != PaymentStatus.SUCCEEDED
            and lease.status == LeaseStatus.ACTIVE
            and not lease.is_returned
            and lease.end_date == hold.previous_end_date
        ):
            await self.lease_repo.transition(
                lease.id,
                (LeaseStatus.ACTIVE,),
                end_date=hold.new_end_date,
                total_amount=total,
                payment_id=hold.payment_intent_id,
            )
            return Outcome.EXTENDED

        if hold.status == PaymentStatus.SUCCEEDED:
            return Outcome.NOOP

        return Outcome.REFUND_REQUIRED

    async def _apply_release(
        self,
        hold: LeasePayment,
        status: PaymentStatus,
        now: datetime,
    ) -> str:
        settled = await self.payment_repo.settle(hold.id, status)
        if not settled:
            return Outcome.NOOP

        lease = await self.lease_repo.get_by_id(hold.lease_id)
        if (
            lease is None
            or lease.status != LeaseStatus.PENDING
            or lease.payment_id != hold.payment_intent_id
        ):
            return Outcome.NOOP

        if hold.kind == PaymentKind.CREATE:
            cancelled = await self.lease_repo.transition(
                lease.id,
                (LeaseStatus.PENDING,),
                status=LeaseStatus.CANCELLED,
            )
            if cancelled:
                await self.car_repo.release_if_unleased(lease.car_id, exclude_lease_id=lease.id)
                return Outcome.CANCELLED
            return Outcome.NOOP

        reverted_end = hold.previous_end_date or lease.end_date
        if reverted_end < now:
            expired = await self.lease_repo.transition(
                lease.id,
                (LeaseStatus.PENDING,),
                status=LeaseStatus.EXPIRED,
                end_date=reverted_end,
            )
            if expired:
                await self.car_repo.release_if_unleased(lease.car_id, exclude_lease_id=lease.id)
                return Outcome.EXPIRED
            return Outcome.NOOP

        reverted = await self.lease_repo.transition(
            lease.id,
            (LeaseStatus.PENDING,),
            status=LeaseStatus.ACTIVE,
            end_date=reverted_end,
        )
        return Outcome.REVERTED if reverted else Outcome.NOOP

    async def _after_commit(self, outcome: str, hold: LeasePayment, reason: str):
        if outcome == Outcome.NOOP:
            return

        try:
            lease = await self.lease_repo.get_by_id(hold.lease_id)
            if lease is None:
                return
            car = await self.car_repo.get_by_id(lease.car_id)

            if outcome in (Outcome.ACTIVATED, Outcome.REACTIVATED):
                await self.side_effects.lease_confirmed(lease, car)
            elif outcome == Outcome.EXTENDED:
                await self.side_effects.lease_extended(lease, car, hold.amount)
            elif outcome == Outcome.CANCELLED:
                await self.side_effects.lease_cancelled(lease, reason)
            elif outcome == Outcome.REVERTED:
                await self.side_effects.extension_reverted(lease, reason)
            elif outcome == Outcome.EXPIRED:
                await self.side_effects.extension_reverted(lease, reason)
                await self.side_effects.lease_expired(lease)
            elif outcome == Outcome.REFUND_REQUIRED:
                await self.side_effects.refund_required(
                    lease, hold.payment_intent_id, hold.amount
                )
        except Exception as e:
            logger.error(
                f"Side effects failed after {outcome}: {e}",
                extra={"lease_id": str(hold.lease_id)},
            )
