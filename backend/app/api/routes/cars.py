from __future__ import annotations

from fastapi import APIRouter, Request, Response

from backend.app.api import links
from backend.app.api.schemas import CarListOut, CarOut, Link, VehicleIn
from backend.app.services.aggregation import VehicleAggregationService, collect
from backend.app.services.vehicle_store import Vehicle


def _service(request: Request) -> VehicleAggregationService:
    return request.app.state.service


async def list_cars(request: Request) -> CarListOut:
    """List every car with its current price status."""
    results = await collect(_service(request).list())
    return CarListOut(
        cars=[CarOut.from_result(result, links.car_links(result.vehicle.id)) for result in results],
        links={rel: Link(href=href) for rel, href in links.collection_links().items()},
    )


async def get_car(id: int, request: Request) -> CarOut:
    """Return one car; a pricing outage is reported in price_status, not as an error."""
    result = await _service(request).get(id)
    return CarOut.from_result(result, links.car_links(id))


async def create_car(body: VehicleIn, request: Request, response: Response) -> CarOut:
    saved = await _service(request).save(Vehicle(attributes=body.attributes))
    car_links = links.car_links(saved.id)
    response.headers["Location"] = car_links["self"]
    return CarOut.from_vehicle(saved, car_links)


async def replace_car(id: int, body: VehicleIn, request: Request) -> CarOut:
    saved = await _service(request).update(id, Vehicle(attributes=body.attributes))
    return CarOut.from_vehicle(saved, links.car_links(saved.id))


async def delete_car(id: int, request: Request) -> Response:
    await _service(request).delete(id)
    return Response(status_code=204)


# method, path, handler, status, response model
ROUTES = [
    ("GET", links.CARS_ROUTE, list_cars, 200, CarListOut),
    ("GET", links.CAR_ROUTE, get_car, 200, CarOut),
    ("POST", links.CARS_ROUTE, create_car, 201, CarOut),
    ("PUT", links.CAR_ROUTE, replace_car, 200, CarOut),
    ("DELETE", links.CAR_ROUTE, delete_car, 204, None),
]


def build_router() -> APIRouter:
    router = APIRouter(tags=["cars"])
    for method, path, handler, status_code, response_model in ROUTES:
        router.add_api_route(
            path,
            handler,
            methods=[method],
            status_code=status_code,
            response_model=response_model,
        )
    return router
