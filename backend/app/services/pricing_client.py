from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Protocol

import httpx

from backend.app.core.logger import get_logger
from backend.app.core.settings import settings

logger = get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
PRICE_PATH = "/services/price"


class PricingError(Exception):
    """Base exception for pricing service outcomes other than a quote."""

    def __init__(self, vehicle_id: int, message: str):
        super().__init__(message)
        self.vehicle_id = vehicle_id


class PriceNotFoundError(PricingError):
    """The pricing service answered and holds no price for the vehicle."""


class PricingUnavailableError(PricingError):
    """The pricing service could not be reached or gave an unusable answer."""


@dataclass(frozen=True)
class PriceQuote:
    vehicle_id: int
    amount: Decimal
    currency: str = "USD"


class AsyncTransport(Protocol):
    async def get(
        self,
        path: str,
        params: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
    ) -> httpx.Response: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """httpx-based transport with connection pooling."""

    def __init__(self, base_url: str):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=None)

    async def get(
        self,
        path: str,
        params: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
    ) -> httpx.Response:
        return await self._client.get(path, params=params, headers=headers, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()


def _same_id(quoted_id: Any, vehicle_id: int) -> bool:
    if isinstance(quoted_id, bool):
        return False
    try:
        return Decimal(str(quoted_id)) == vehicle_id
    except (InvalidOperation, ValueError):
        return False


class PricingClient:
    """Async client for the pricing service's price lookup endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        transport: Optional[AsyncTransport] = None,
    ):
        self.base_url = (base_url or settings.pricing_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.pricing_timeout
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.pricing_max_attempts)
        self.backoff_base = backoff_base if backoff_base is not None else settings.pricing_backoff_base
        self._transport = transport or HttpxTransport(self.base_url)
        self._owns_transport = transport is None
        self._headers = {"Accept": "application/json"}

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.close()

    async def quote(self, vehicle_id: int) -> PriceQuote:
        response = await self._get(vehicle_id)
        if response.status_code == 404:
            raise PriceNotFoundError(vehicle_id, f"No price for vehicle {vehicle_id}")
        if response.status_code != 200:
            raise PricingUnavailableError(
                vehicle_id, f"Pricing service returned {response.status_code} for vehicle {vehicle_id}"
            )
        try:
            body = response.json()
        except (ValueError, RecursionError) as exc:
            raise PricingUnavailableError(vehicle_id, "Invalid JSON from pricing service") from exc
        return self._parse_quote(vehicle_id, body)

    async def _get(self, vehicle_id: int) -> httpx.Response:
        params = {"vehicleId": vehicle_id}
        attempts = 0
        last_error: Optional[str] = None
        while attempts < self.max_attempts:
            try:
                response = await self._transport.get(
                    PRICE_PATH, params=params, headers=self._headers, timeout=self.timeout
                )
            except httpx.RequestError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                await self._maybe_wait(attempts)
                attempts += 1
                continue

            if response.status_code in RETRYABLE_STATUS:
                last_error = f"Pricing service returned {response.status_code}"
                await self._maybe_wait(attempts)
                attempts += 1
                continue

            return response

        logger.warning("Pricing lookup for vehicle %s failed after %d attempts: %s", vehicle_id, attempts, last_error)
        raise PricingUnavailableError(vehicle_id, last_error or "Pricing request failed")

    async def _maybe_wait(self, attempt: int) -> None:
        if attempt >= self.max_attempts - 1:
            return
        delay = self.backoff_base * (2 ** attempt)
        jitter = random.uniform(0, self.backoff_base)
        await asyncio.sleep(delay + jitter)

    @staticmethod
    def _parse_quote(vehicle_id: int, body: Any) -> PriceQuote:
        if not isinstance(body, dict):
            raise PricingUnavailableError(vehicle_id, "Unexpected pricing payload")
        raw_price = body.get("price")
        if raw_price is None:
            raise PricingUnavailableError(vehicle_id, "Pricing payload has no price")
        try:
            amount = Decimal(str(raw_price))
        except (InvalidOperation, ValueError) as exc:
            raise PricingUnavailableError(vehicle_id, f"Malformed price {raw_price!r}") from exc
        if not amount.is_finite() or amount <= 0:
            raise PricingUnavailableError(vehicle_id, f"Malformed price {raw_price!r}")
        quoted_id = body.get("vehicleId")
        if quoted_id is not None and not _same_id(quoted_id, vehicle_id):
            raise PricingUnavailableError(vehicle_id, f"Quote returned for vehicle {quoted_id}")
        currency = body.get("currency") or "USD"
        return PriceQuote(vehicle_id=vehicle_id, amount=amount, currency=str(currency).upper())
