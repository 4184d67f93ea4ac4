"""Core lease business logic."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from shared.cache import LeaseCache, lease_key, payment_history_key, user_leases_key
from shared.config import settings
from shared.event_bus import EventBusManager
from shared.exceptions import (
    ConflictError,
    ForbiddenError,
    LeaseValidationError,
    NotFoundError,
)
from shared.models.lease import Lease, LeaseStatus, OPEN_LEASE_STATUSES
from shared.models.payment import LeasePayment, PaymentKind, PaymentStatus
from shared.repositories.car import CarRepository
from shared.repositories.lease import LeaseRepository
from shared.repositories.payment import PaymentRepository
from shared.views import LeaseView, PaymentHistoryView
from services.notification_service.domain.notification_dispatcher import (
    NotificationDispatcher,
)
from services.payment_service.domain.intents import CreateLeaseIntent, ExtendLeaseIntent
from services.payment_service.domain.payment_gateway import (
    StripePaymentGateway,
    payment_gateway,
)
from .pricing import LeasePricing
from .side_effects import LeaseSideEffects

logger = logging.getLogger(__name__)

PAID_STATUSES = (LeaseStatus.ACTIVE, LeaseStatus.COMPLETED, LeaseStatus.EXPIRED)


class LeaseStateMachine:
    """State machine for lease status transitions."""

    # Valid transitions: from_status -> [valid_to_statuses]
    VALID_TRANSITIONS = {
        LeaseStatus.PENDING: [LeaseStatus.ACTIVE, LeaseStatus.CANCELLED, LeaseStatus.COMPLETED],
        LeaseStatus.ACTIVE: [LeaseStatus.PENDING, LeaseStatus.COMPLETED, LeaseStatus.EXPIRED],
        LeaseStatus.COMPLETED: [],  # Terminal state
        LeaseStatus.EXPIRED: [],  # Terminal state
        LeaseStatus.CANCELLED: [],  # Terminal state
    }

    @classmethod
    def can_transition(
        cls,
        from_status: LeaseStatus,
        to_status: LeaseStatus,
    ) -> bool:
        """Check if transition is allowed."""
        if from_status not in cls.VALID_TRANSITIONS:
            return False

        return to_status in cls.VALID_TRANSITIONS[from_status]

    @classmethod
    def validate_transition(
        cls,
        from_status: LeaseStatus,
        to_status: LeaseStatus,
    ) -> None:
        """Validate transition, raise ConflictError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise ConflictError(
                f"Invalid transition: {from_status.value} -> {to_status.value}"
            )


class LeaseService:
    """Service for lease operations."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[StripePaymentGateway] = None,
        cache: Optional[LeaseCache] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        bus: Optional[EventBusManager] = None,
    ):
        self.session = session
        self.lease_repo = LeaseRepository(session)
        self.car_repo = CarRepository(session)
        self.payment_repo = PaymentRepository(session)
        self.gateway = gateway or payment_gateway
        self.cache = cache or LeaseCache()
        self.side_effects = LeaseSideEffects(session, self.cache, dispatcher, bus)

    async def create_lease(
        self,
        user_id: str,
        car_id: UUID,
        start_date: datetime,
        end_date: datetime,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> tuple[Lease, Optional[str]]:
        """
        Reserve a car and open a pending lease paid by a new payment intent.

        The car stays reserved until the gateway confirms, fails, or the
        hold expires.

        Args:
            user_id: Leasing user
            car_id: Car to lease
            start_date: Lease start
            end_date: Lease end (exactly the first-lease length after start)
            email: Where confirmation emails go
            now: Current time (default: utcnow)

        Returns:
            (pending Lease, payment intent client secret)

        Raises:
            LeaseValidationError: If the period is invalid
            NotFoundError: If the car does not exist
            ConflictError: If the car is taken or the reservation race was lost
            UpstreamFailureError: If the payment intent cannot be created
        """
        now = now or datetime.utcnow()
        days = LeasePricing.validate_first_lease_period(start_date, end_date)

        car = await self.car_repo.get_by_id(car_id)
        if car is None:
            raise NotFoundError(f"Car not found: {car_id}")

        if not car.available:
            raise ConflictError("Car is not available for lease")

        overlapping = await self.lease_repo.find_overlapping(car_id, start_date, end_date)
        if overlapping is not None:
            raise ConflictError("Car is already leased for the selected dates")

        total_amount = LeasePricing.charge(car.price_per_day, days)

        try:
            reserved = await self.car_repo.reserve(car_id)
            lease = None
            if reserved:
                lease = await self.lease_repo.create(
                    Lease(
                        user_id=user_id,
                        car_id=car_id,
                        contact_email=email,
                        start_date=start_date,
                        end_date=end_date,
                        total_amount=total_amount,
                        status=LeaseStatus.PENDING,
                        is_returned=False,
                    )
                )
            await self.session.commit()
        except Exception as e:
            logger.error(f"Failed to reserve car {car_id}: {e}")
            await self.session.rollback()
            raise

        if not reserved:
            logger.info(f"Lost reservation race for car {car_id}")
            raise ConflictError("Car is not available for lease")

        lease_id = lease.id

        metadata = CreateLeaseIntent(
            user_id=user_id,
            car_id=car_id,
            lease_id=lease.id,
            start_date=start_date,
            end_date=end_date,
            email=email,
        )

        try:
            intent = await self.gateway.create_payment_intent(
                total_amount,
                settings.payment_currency,
                metadata,
                idempotency_key=f"lease-create-{lease.id}",
            )
            await self.lease_repo.update(lease.id, payment_id=intent.id)
            await self.payment_repo.create(
                LeasePayment(
                    lease_id=lease.id,
                    payment_intent_id=intent.id,
                    kind=PaymentKind.CREATE,
                    amount=total_amount,
                    days=days,
                    status=PaymentStatus.PENDING,
                    new_end_date=end_date,
                    expires_at=now + timedelta(minutes=settings.hold_timeout_minutes),
                )
            )
            await self.session.commit()
        except Exception as e:
            logger.error(
                f"Failed to open payment for lease {lease_id}: {e}",
                extra={"lease_id": str(lease_id)},
            )
            await self.session.rollback()
            await self._abandon_pending_lease(lease_id, car_id)
            raise

        lease = await self.lease_repo.get_by_id(lease.id)

        logger.info(
            f"Created pending lease {lease.id} for user {user_id} on car {car_id} "
            f"({days} days, {total_amount})",
            extra={"lease_id": str(lease.id)},
        )

        await self.side_effects.lease_requested(lease, car)

        return await self.lease_repo.get_by_id(lease_id), intent.client_secret

    async def extend_lease(
        self,
        lease_id: UUID,
        user_id: str,
        additional_days: int,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> tuple[Lease, Optional[str], Decimal]:
        """
        Request an extension paid by a second payment intent.

        The end date moves forward at once and the lease waits in PENDING
        until the gateway confirms; a failed or expired payment reverts it.

        Returns:
            (updated Lease, payment intent client secret, extension charge)

        Raises:
            LeaseValidationError: If days are not positive or the window is closed
            NotFoundError: If the lease or its car does not exist
            ForbiddenError: If the lease belongs to another user
            ConflictError: If the lease is not ACTIVE or was returned
            UpstreamFailureError: If the payment intent cannot be created
        """
        now = now or datetime.utcnow()

        if additional_days is None or additional_days <= 0:
            raise LeaseValidationError("Additional days must be greater than 0")

        lease = await self._get_owned_lease(lease_id, user_id)

        if lease.is_returned or lease.status != LeaseStatus.ACTIVE:
            raise ConflictError("Only active leases can be extended")

        LeaseStateMachine.validate_transition(lease.status, LeaseStatus.PENDING)
        LeasePricing.validate_extension_window(lease.end_date, now)

        car = await self.car_repo.get_by_id(lease.car_id)
        if car is None:
            raise NotFoundError(f"Car not found: {lease.car_id}")

        charge = LeasePricing.charge(car.price_per_day, additional_days)
        previous_end_date = lease.end_date
        new_end_date = LeasePricing.extended_end_date(previous_end_date, additional_days)
        contact_email = email or lease.contact_email

        metadata = ExtendLeaseIntent(
            user_id=user_id,
            car_id=lease.car_id,
            lease_id=lease.id,
            additional_days=additional_days,
            new_end_date=new_end_date,
            email=contact_email,
        )

        intent = await self.gateway.create_payment_intent(
            charge,
            settings.payment_currency,
            metadata,
            idempotency_key=f"lease-extend-{lease.id}-{uuid4()}",
        )

        try:
            updated = await self.lease_repo.transition(
                lease.id,
                (LeaseStatus.ACTIVE,),
                status=LeaseStatus.PENDING,
                end_date=new_end_date,
                payment_id=intent.id,
                contact_email=contact_email,
            )
            if updated:
                await self.payment_repo.create(
                    LeasePayment(
                        lease_id=lease.id,
                        payment_intent_id=intent.id,
                        kind=PaymentKind.EXTEND,
                        amount=charge,
                        days=additional_days,
                        status=PaymentStatus.PENDING,
                        previous_end_date=previous_end_date,
                        new_end_date=new_end_date,
                        expires_at=now + timedelta(minutes=settings.hold_timeout_minutes),
                    )
                )
            await self.session.commit()
        except Exception as e:
            logger.error(
                f"Failed to record extension for lease {lease.id}: {e}",
                extra={"lease_id": str(lease.id)},
            )
            await self.session.rollback()
            raise

        if not updated:
            logger.warning(
                f"Lease changed while extension intent {intent.id} was created",
                extra={"lease_id": str(lease.id)},
            )
            raise ConflictError("Only active leases can be extended")

        lease = await self.lease_repo.get_by_id(lease_id)

        logger.info(
            f"Extension of {additional_days} day(s) requested for lease {lease.id} "
            f"(charge {charge}, new end {new_end_date})",
            extra={"lease_id": str(lease.id)},
        )

        await self.side_effects.extension_requested(lease, car, additional_days)

        return await self.lease_repo.get_by_id(lease_id), intent.client_secret, charge

    async def return_car(
        self,
        lease_id: UUID,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Lease:
        """
        Close a lease and free its car.

        Raises:
            NotFoundError: If the lease does not exist
            ForbiddenError: If the lease belongs to another user
            ConflictError: If the car was already returned or the lease is closed
        """
        now = now or datetime.utcnow()
        lease = await self._get_owned_lease(lease_id, user_id)

        if lease.is_returned:
            raise ConflictError("Car has already been returned")

        if lease.status not in OPEN_LEASE_STATUSES:
            raise ConflictError(f"Lease is {lease.status.value.lower()} and cannot be returned")

        LeaseStateMachine.validate_transition(lease.status, LeaseStatus.COMPLETED)

        try:
            returned = await self.lease_repo.transition(
                lease.id,
                OPEN_LEASE_STATUSES,
                status=LeaseStatus.COMPLETED,
                is_returned=True,
                returned_date=now,
            )
            if returned:
                for hold in await self.payment_repo.get_pending_for_lease(lease.id):
                    await self.payment_repo.settle(hold.id, PaymentStatus.CANCELLED)
                await self.car_repo.release_if_unleased(lease.car_id, exclude_lease_id=lease.id)
            await self.session.commit()
        except Exception as e:
            logger.error(
                f"Failed to return car for lease {lease.id}: {e}",
                extra={"lease_id": str(lease.id)},
            )
            await self.session.rollback()
            raise

        if not returned:
            raise ConflictError("Lease is no longer active")

        lease = await self.lease_repo.get_by_id(lease_id)
        car = await self.car_repo.get_by_id(lease.car_id)

        logger.info(
            f"Car {lease.car_id} returned for lease {lease.id}",
            extra={"lease_id": str(lease.id)},
        )

        await self.side_effects.lease_returned(lease, car)

        return await self.lease_repo.get_by_id(lease_id)

    async def get_lease(
        self,
        lease_id: UUID,
        user_id: Optional[str] = None,
        is_admin: bool = False,
    ) -> LeaseView:
        """
        Get one lease, from cache when present.

        Raises:
            NotFoundError: If the lease does not exist
            ForbiddenError: If a non-admin asks for another user's lease
        """
        view = None
        cached = await self.cache.get_json(lease_key(lease_id))
        if cached is not None:
            view = LeaseView.model_validate(cached)
        else:
            lease = await self.lease_repo.get_by_id(lease_id)
            if lease is None:
                raise NotFoundError(f"Lease not found: {lease_id}")
            view = LeaseView.model_validate(lease)
            await self.cache.set_json(lease_key(lease_id), view.model_dump(mode="json"))

        if not is_admin and user_id is not None and view.user_id != user_id:
            raise ForbiddenError("You are not allowed to view this lease")

        return view

    async def list_user_leases(self, user_id: str) -> List[LeaseView]:
        """A user's leases, newest first."""
        cached = await self.cache.get_json(user_leases_key(user_id))
        if cached is not None:
            return [LeaseView.model_validate(item) for item in cached]

        leases = await self.lease_repo.get_by_user_id(user_id)
        views = [LeaseView.model_validate(lease) for lease in leases]

        await self.cache.set_json(
            user_leases_key(user_id),
            [view.model_dump(mode="json") for view in views],
        )
        return views

    async def get_payment_history(self, user_id: str) -> PaymentHistoryView:
        """Totals over a user's leases."""
        cached = await self.cache.get_json(payment_history_key(user_id))
        if cached is not None:
            return PaymentHistoryView.model_validate(cached)

        leases = await self.lease_repo.get_by_user_id(user_id, limit=1000)
        paid = [lease for lease in leases if lease.status in PAID_STATUSES]

        history = PaymentHistoryView(
            total_leases=len(leases),
            total_paid=len(paid),
            total_pending=sum(1 for lease in leases if lease.status == LeaseStatus.PENDING),
            total_cancelled=sum(1 for lease in leases if lease.status == LeaseStatus.CANCELLED),
            total_amount_paid=sum((lease.total_amount for lease in paid), Decimal("0.00")),
            leases=[LeaseView.model_validate(lease) for lease in leases],
        )

        await self.cache.set_json(payment_history_key(user_id), history.model_dump(mode="json"))
        return history

    async def admin_delete_lease(self, lease_id: UUID, admin_id: str) -> LeaseView:
        """
        Remove a lease and its payment rows, freeing the car.

        Raises:
            NotFoundError: If the lease does not exist
        """
        lease = await self.lease_repo.get_by_id(lease_id)
        if lease is None:
            raise NotFoundError(f"Lease not found: {lease_id}")

        view = LeaseView.model_validate(lease)

        try:
            await self.payment_repo.delete_for_lease(lease.id)
            await self.lease_repo.delete(lease.id)
            await self.car_repo.release_if_unleased(lease.car_id, exclude_lease_id=lease.id)
            await self.session.commit()
        except Exception as e:
            logger.error(
                f"Failed to delete lease {lease.id}: {e}",
                extra={"lease_id": str(lease.id)},
            )
            await self.session.rollback()
            raise

        logger.info(
            f"Lease {lease.id} deleted by admin {admin_id}",
            extra={"lease_id": str(lease.id)},
        )

        await self.side_effects.lease_deleted(lease, admin_id)

        return view

    async def _get_owned_lease(self, lease_id: UUID, user_id: str) -> Lease:
        lease = await self.lease_repo.get_by_id(lease_id)
        if lease is None:
            raise NotFoundError(f"Lease not found: {lease_id}")

        if lease.user_id != user_id:
            raise ForbiddenError()

        return lease

    async def _abandon_pending_lease(self, lease_id: UUID, car_id: UUID):
        """Cancel a lease whose payment intent could not be opened."""
        try:
            cancelled = await self.lease_repo.transition(
                lease_id,
                (LeaseStatus.PENDING,),
                status=LeaseStatus.CANCELLED,
            )
            if cancelled:
                await self.car_repo.release_if_unleased(car_id, exclude_lease_id=lease_id)
            await self.session.commit()
        except Exception as e:
            logger.error(
                f"Failed to release car {car_id} after payment failure: {e}",
                extra={"lease_id": str(lease_id)},
            )
            await self.session.rollback()
            return

        lease = await self.lease_repo.get_by_id(lease_id)
        if lease is not None:
            await self.side_effects.lease_cancelled(lease, "payment intent could not be created")
