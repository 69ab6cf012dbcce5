import asyncio
import time
from decimal import Decimal

import httpx
import pytest

from backend.app.core.errors import NotFoundError, ValidationFailedError
from backend.app.services.aggregation import PriceStatus, VehicleAggregationService, collect
from backend.app.services.pricing_client import PricingClient
from backend.app.services.vehicle_store import Vehicle
from backend.tests.fakes import FakePricingClient


class KeyedTransport:
    def __init__(self, responses):
        self._responses = responses

    async def get(self, path, params, headers, timeout):
        return self._responses[params["vehicleId"]]

    async def close(self):
        return None


def make_response(status_code, body=None, content=None):
    request = httpx.Request("GET", "http://pricing.test/services/price")
    if content is not None:
        return httpx.Response(status_code=status_code, content=content, request=request)
    return httpx.Response(status_code=status_code, json=body, request=request)


def make_service(store, answers=None, default="missing", timeout=0.2):
    pricing = FakePricingClient(answers, default=default)
    return VehicleAggregationService(store, pricing, enrichment_timeout=timeout, concurrency=5), pricing


def seed(store, vehicle_id=42, **attributes):
    attributes = attributes or {"make": "Toyota", "model": "Corolla", "year": 2020}
    return store.save(Vehicle(id=vehicle_id, attributes=attributes))


@pytest.mark.asyncio
async def test_get_attaches_quote_when_priced(store):
    seed(store)
    service, _ = make_service(store, {42: "18500"})
    result = await service.get(42)
    assert result.status is PriceStatus.PRICED
    assert result.price.amount == Decimal("18500")
    assert result.vehicle.id == 42


@pytest.mark.asyncio
async def test_get_without_business_price_is_not_an_error(store):
    seed(store)
    service, _ = make_service(store, {42: "missing"})
    result = await service.get(42)
    assert result.status is PriceStatus.PRICE_UNAVAILABLE
    assert result.price is None


@pytest.mark.asyncio
@pytest.mark.parametrize("answer", ["down", "hang"])
async def test_get_with_pricing_outage_still_returns_vehicle(store, answer):
    seed(store)
    service, _ = make_service(store, {42: answer})
    result = await service.get(42)
    assert result.status is PriceStatus.PRICE_SERVICE_UNREACHABLE
    assert result.price is None
    assert result.vehicle.attributes == {"make": "Toyota", "model": "Corolla", "year": 2020}


@pytest.mark.asyncio
@pytest.mark.parametrize("answer", ["18500", "missing", "down"])
async def test_get_missing_vehicle_is_not_found_whatever_pricing_says(store, answer):
    service, pricing = make_service(store, default=answer)
    with pytest.raises(NotFoundError):
        await service.get(99)
    assert pricing.calls == []


@pytest.mark.asyncio
async def test_repeated_get_is_stable(store):
    seed(store)
    service, _ = make_service(store, {42: "18500"})
    assert await service.get(42) == await service.get(42)


@pytest.mark.asyncio
async def test_save_then_get_round_trips_attributes(store):
    service, _ = make_service(store)
    saved = await service.save(Vehicle(attributes={"make": "Toyota", "model": "Corolla", "year": 2020}))
    assert saved.price is None
    result = await service.get(saved.id)
    assert result.vehicle.attributes == {"make": "Toyota", "model": "Corolla", "year": 2020}


@pytest.mark.asyncio
async def test_save_rejects_invalid_vehicle(store):
    service, _ = make_service(store)
    with pytest.raises(ValidationFailedError) as excinfo:
        await service.save(Vehicle(attributes={"model": "Corolla"}))
    assert [v.field for v in excinfo.value.violations] == ["make"]
    assert store.list() == []


@pytest.mark.asyncio
async def test_save_never_persists_price(store):
    service, _ = make_service(store, {42: "18500"})
    priced = (await service.get(seed(store).id)).vehicle
    saved = await service.save(priced)
    assert saved.price is None


@pytest.mark.asyncio
async def test_update_overrides_caller_id_and_upserts(store):
    service, _ = make_service(store)
    payload = Vehicle(id=1, attributes={"make": "Ford", "model": "Focus"})
    saved = await service.update(7, payload)
    assert saved.id == 7
    assert payload.id == 1
    assert store.get(7).attributes == {"make": "Ford", "model": "Focus"}
    assert store.get(1) is None


@pytest.mark.asyncio
async def test_update_replaces_existing_attributes(store):
    seed(store, mileage=100, make="Toyota", model="Corolla")
    service, _ = make_service(store)
    await service.update(42, Vehicle(attributes={"make": "Toyota", "model": "Camry"}))
    assert store.get(42).attributes == {"make": "Toyota", "model": "Camry"}


@pytest.mark.asyncio
async def test_delete_unknown_vehicle_is_not_found(store):
    service, _ = make_service(store)
    with pytest.raises(NotFoundError):
        await service.delete(100)


@pytest.mark.asyncio
async def test_delete_removes_vehicle(store):
    seed(store)
    service, _ = make_service(store)
    await service.delete(42)
    with pytest.raises(NotFoundError):
        await service.get(42)


@pytest.mark.asyncio
async def test_list_isolates_one_timeout_from_the_others(store):
    for vehicle_id in (1, 2, 3):
        seed(store, vehicle_id, make="Toyota", model=f"Model {vehicle_id}")
    service, _ = make_service(store, {1: "10000", 2: "hang", 3: "30000"}, timeout=0.2)

    started = time.monotonic()
    results = await collect(service.list())
    elapsed = time.monotonic() - started

    assert [r.vehicle.id for r in results] == [1, 2, 3]
    assert [r.status for r in results] == [
        PriceStatus.PRICED,
        PriceStatus.PRICE_SERVICE_UNREACHABLE,
        PriceStatus.PRICED,
    ]
    assert results[0].price.amount == Decimal("10000")
    assert results[2].price.amount == Decimal("30000")
    assert elapsed < 2


@pytest.mark.asyncio
async def test_list_mixes_all_price_statuses(store):
    for vehicle_id in (1, 2, 3):
        seed(store, vehicle_id)
    service, _ = make_service(store, {1: "5000", 2: "missing", 3: "down"})
    statuses = [r.status async for r in service.list()]
    assert statuses == [
        PriceStatus.PRICED,
        PriceStatus.PRICE_UNAVAILABLE,
        PriceStatus.PRICE_SERVICE_UNREACHABLE,
    ]


@pytest.mark.asyncio
async def test_list_closed_early_cancels_pending_quotes(store):
    for vehicle_id in (1, 2):
        seed(store, vehicle_id)
    service, pricing = make_service(store, {1: "5000", 2: "hang"}, timeout=30)
    results = service.list()
    first = await results.__anext__()
    assert first.status is PriceStatus.PRICED
    await results.aclose()
    await asyncio.sleep(0.05)
    assert pricing.cancelled == [2]


@pytest.mark.asyncio
async def test_list_contains_unexpected_pricing_errors_to_their_item(store):
    for vehicle_id in (1, 2, 3):
        seed(store, vehicle_id)
    service, _ = make_service(store, {1: "5000", 2: "boom", 3: "7000"})
    results = await collect(service.list())
    assert [r.status for r in results] == [
        PriceStatus.PRICED,
        PriceStatus.PRICE_SERVICE_UNREACHABLE,
        PriceStatus.PRICED,
    ]
    assert results[1].vehicle.attributes == {"make": "Toyota", "model": "Corolla", "year": 2020}


@pytest.mark.asyncio
async def test_list_with_real_client_survives_deeply_nested_reply(store):
    for vehicle_id in (1, 2, 3):
        seed(store, vehicle_id)
    responses = {
        1: make_response(200, {"vehicleId": 1, "currency": "USD", "price": 100}),
        2: make_response(200, content=b"[" * 100000 + b"]" * 100000),
        3: make_response(200, {"vehicleId": 3, "currency": "USD", "price": 300}),
    }
    client = PricingClient("http://pricing.test", transport=KeyedTransport(responses), max_attempts=1)
    service = VehicleAggregationService(store, client, enrichment_timeout=5)
    results = await collect(service.list())
    assert [r.status for r in results] == [
        PriceStatus.PRICED,
        PriceStatus.PRICE_SERVICE_UNREACHABLE,
        PriceStatus.PRICED,
    ]


@pytest.mark.asyncio
async def test_update_with_out_of_range_id_is_rejected(store):
    service, _ = make_service(store)
    with pytest.raises(ValidationFailedError) as excinfo:
        await service.update(2 ** 70, Vehicle(attributes={"make": "Ford", "model": "Focus"}))
    assert [v.field for v in excinfo.value.violations] == ["id"]


@pytest.mark.asyncio
async def test_out_of_range_ids_are_not_found(store):
    service, _ = make_service(store, default="down")
    with pytest.raises(NotFoundError):
        await service.get(2 ** 70)
    with pytest.raises(NotFoundError):
        await service.delete(-(2 ** 70))
