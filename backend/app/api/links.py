from typing import Dict

CARS_ROUTE = "/cars"
CAR_ROUTE = "/cars/{id}"


def expand(template: str, **params) -> str:
    return template.format(**{key: str(value) for key, value in params.items()})


def car_links(vehicle_id: int) -> Dict[str, str]:
    return {"self": expand(CAR_ROUTE, id=vehicle_id), "cars": CARS_ROUTE}


def collection_links() -> Dict[str, str]:
    return {"self": CARS_ROUTE}
