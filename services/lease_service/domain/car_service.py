"""Car browsing and listing."""

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from shared import audit
from shared.audit import AuditRecorder
from shared.cache import ALL_CARS_KEY, LeaseCache, car_key
from shared.exceptions import LeaseValidationError, NotFoundError
from shared.models.car import Car
from shared.repositories.car import CarRepository
from shared.views import CarView

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class CarService:
    """Read-through access to cars and admin listing."""

    def __init__(self, session: AsyncSession, cache: Optional[LeaseCache] = None):
        self.session = session
        self.car_repo = CarRepository(session)
        self.cache = cache or LeaseCache()

    async def get_car(self, car_id: UUID) -> CarView:
        """
        Get one car, from cache when present.

        Raises:
            NotFoundError: If the car does not exist
        """
        cached = await self.cache.get_json(car_key(car_id))
        if cached is not None:
            return CarView.model_validate(cached)

        car = await self.car_repo.get_by_id(car_id)
        if car is None:
            raise NotFoundError(f"Car not found: {car_id}")

        view = CarView.model_validate(car)
        await self.cache.set_json(car_key(car_id), view.model_dump(mode="json"))
        return view

    async def list_cars(
        self,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
        available_only: bool = False,
    ) -> List[CarView]:
        """List cars. Only the unfiltered first page is cached."""
        cacheable = skip == 0 and limit == DEFAULT_PAGE_SIZE and not available_only

        if cacheable:
            cached = await self.cache.get_json(ALL_CARS_KEY)
            if cached is not None:
                return [CarView.model_validate(item) for item in cached]

        cars = await self.car_repo.list_cars(skip, limit, available_only)
        views = [CarView.model_validate(car) for car in cars]

        if cacheable:
            await self.cache.set_json(
                ALL_CARS_KEY,
                [view.model_dump(mode="json") for view in views],
            )

        return views

    async def create_car(
        self,
        admin_id: str,
        brand: str,
        model_name: str,
        price_per_day: Decimal,
        year: Optional[int] = None,
    ) -> CarView:
        """
        List a new car as available.

        Raises:
            LeaseValidationError: If the daily price is not positive
        """
        if price_per_day <= 0:
            raise LeaseValidationError("Price per day must be greater than 0")

        try:
            car = await self.car_repo.create(
                Car(
                    brand=brand,
                    model_name=model_name,
                    year=year,
                    price_per_day=price_per_day,
                    available=True,
                )
            )
            await self.session.commit()
        except Exception as e:
            logger.error(f"Failed to list car {brand} {model_name}: {e}")
            await self.session.rollback()
            raise

        logger.info(f"Listed car {car.id} ({brand} {model_name}) at {price_per_day}/day")

        await self.cache.delete(ALL_CARS_KEY)
        await AuditRecorder(self.session).record(
            audit.CAR_LISTED,
            admin_id,
            f"{brand} {model_name} listed at {price_per_day} per day",
            car_id=car.id,
        )

        return CarView.model_validate(car)
