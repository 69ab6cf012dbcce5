from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import AsyncIterator, List, Optional, Protocol

from backend.app.core.errors import NotFoundError, ValidationFailedError
from backend.app.core.logger import get_logger
from backend.app.core.settings import settings
from backend.app.services.pricing_client import (
    PriceNotFoundError,
    PriceQuote,
    PricingUnavailableError,
)
from backend.app.services.validation import Violation, validate_vehicle
from backend.app.services.vehicle_store import Vehicle, VehicleStore, is_storable_id

logger = get_logger(__name__)


class PriceStatus(str, Enum):
    PRICED = "PRICED"
    PRICE_UNAVAILABLE = "PRICE_UNAVAILABLE"
    PRICE_SERVICE_UNREACHABLE = "PRICE_SERVICE_UNREACHABLE"


@dataclass(frozen=True)
class AggregationResult:
    vehicle: Vehicle
    status: PriceStatus

    @property
    def price(self) -> Optional[PriceQuote]:
        return self.vehicle.price


class QuoteSource(Protocol):
    async def quote(self, vehicle_id: int) -> PriceQuote: ...


class VehicleAggregationService:
    """Combines stored vehicles with read-time price quotes.

    Pricing is best-effort enrichment: a vehicle that exists is always
    returned, with its price status telling callers whether the pricing
    service had no price or could not be reached.
    """

    def __init__(
        self,
        store: VehicleStore,
        pricing: QuoteSource,
        *,
        enrichment_timeout: Optional[float] = None,
        concurrency: Optional[int] = None,
    ):
        self.store = store
        self.pricing = pricing
        self.enrichment_timeout = (
            enrichment_timeout if enrichment_timeout is not None else settings.enrichment_timeout
        )
        self.concurrency = max(1, concurrency if concurrency is not None else settings.pricing_concurrency)

    async def get(self, vehicle_id: int) -> AggregationResult:
        vehicle = self.store.get(vehicle_id)
        if vehicle is None:
            raise NotFoundError(vehicle_id)
        return await self._enrich(vehicle)

    async def list(self) -> AsyncIterator[AggregationResult]:
        vehicles = self.store.list()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def enrich_bounded(vehicle: Vehicle) -> AggregationResult:
            async with semaphore:
                return await self._enrich(vehicle)

        tasks = [asyncio.create_task(enrich_bounded(vehicle)) for vehicle in vehicles]
        try:
            for task in tasks:
                yield await task
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def save(self, vehicle: Vehicle) -> Vehicle:
        violations = validate_vehicle(vehicle.attributes)
        if violations:
            raise ValidationFailedError(violations)
        # Price never reaches the store
        return self.store.save(vehicle.with_price(None))

    async def update(self, vehicle_id: int, vehicle: Vehicle) -> Vehicle:
        if not is_storable_id(vehicle_id):
            raise ValidationFailedError([Violation("id", "is out of range")])
        # Missing ids are created rather than rejected
        return await self.save(replace(vehicle, id=vehicle_id))

    async def delete(self, vehicle_id: int) -> None:
        if not self.store.delete(vehicle_id):
            raise NotFoundError(vehicle_id)

    async def _enrich(self, vehicle: Vehicle) -> AggregationResult:
        try:
            quote = await asyncio.wait_for(self.pricing.quote(vehicle.id), timeout=self.enrichment_timeout)
        except PriceNotFoundError:
            logger.info("No price available for vehicle %s", vehicle.id)
            return AggregationResult(vehicle.with_price(None), PriceStatus.PRICE_UNAVAILABLE)
        except PricingUnavailableError as exc:
            logger.warning("Pricing service unreachable for vehicle %s: %s", vehicle.id, exc)
            return AggregationResult(vehicle.with_price(None), PriceStatus.PRICE_SERVICE_UNREACHABLE)
        except asyncio.TimeoutError:
            logger.warning(
                "Pricing lookup for vehicle %s exceeded %.1fs", vehicle.id, self.enrichment_timeout
            )
            return AggregationResult(vehicle.with_price(None), PriceStatus.PRICE_SERVICE_UNREACHABLE)
        except Exception:
            logger.exception("Unexpected pricing failure for vehicle %s", vehicle.id)
            return AggregationResult(vehicle.with_price(None), PriceStatus.PRICE_SERVICE_UNREACHABLE)
        return AggregationResult(vehicle.with_price(quote), PriceStatus.PRICED)


async def collect(results: AsyncIterator[AggregationResult]) -> List[AggregationResult]:
    return [result async for result in results]
