from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.services.aggregation import AggregationResult, PriceStatus
from backend.app.services.vehicle_store import Vehicle


class VehicleIn(BaseModel):
    attributes: Dict[str, Any]


class Link(BaseModel):
    href: str


class PriceOut(BaseModel):
    amount: Decimal
    currency: str


class CarOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    attributes: Dict[str, Any]
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    price: Optional[PriceOut] = None
    price_status: Optional[PriceStatus] = None
    links: Dict[str, Link] = Field(default_factory=dict, alias="_links")

    @classmethod
    def from_vehicle(cls, vehicle: Vehicle, links: Dict[str, str]) -> "CarOut":
        return cls(
            id=vehicle.id,
            attributes=vehicle.attributes,
            created_at=vehicle.created_at,
            modified_at=vehicle.modified_at,
            links={rel: Link(href=href) for rel, href in links.items()},
        )

    @classmethod
    def from_result(cls, result: AggregationResult, links: Dict[str, str]) -> "CarOut":
        car = cls.from_vehicle(result.vehicle, links)
        car.price_status = result.status
        if result.price is not None:
            car.price = PriceOut(amount=result.price.amount, currency=result.price.currency)
        return car


class CarListOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cars: List[CarOut]
    links: Dict[str, Link] = Field(default_factory=dict, alias="_links")


class ViolationOut(BaseModel):
    field: str
    message: str


class ErrorOut(BaseModel):
    error: str
    detail: str
    violations: List[ViolationOut] = Field(default_factory=list)
