from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from backend.app.core.errors import StoreError
from backend.app.core.logger import get_logger
from backend.app.db import models
from backend.app.db.session import session_scope

if TYPE_CHECKING:
    from backend.app.services.pricing_client import PriceQuote

logger = get_logger(__name__)

# Signed 64-bit range shared by SQLite INTEGER and PostgreSQL BIGINT keys
MIN_VEHICLE_ID = -(2 ** 63)
MAX_VEHICLE_ID = 2 ** 63 - 1


@dataclass
class Vehicle:
    attributes: Dict[str, Any]
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    # Read-time enrichment only; never written to the store
    price: Optional["PriceQuote"] = None

    def with_price(self, quote: Optional["PriceQuote"]) -> "Vehicle":
        return replace(self, price=quote)


class VehicleStore(Protocol):
    def get(self, vehicle_id: int) -> Optional[Vehicle]: ...

    def list(self) -> List[Vehicle]: ...

    def save(self, vehicle: Vehicle) -> Vehicle: ...

    def delete(self, vehicle_id: int) -> bool: ...


def is_storable_id(vehicle_id: int) -> bool:
    return MIN_VEHICLE_ID <= vehicle_id <= MAX_VEHICLE_ID


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


_ADVANCE_ID_SEQUENCE = text(
    "SELECT setval(pg_get_serial_sequence('vehicles', 'id'), "
    "GREATEST((SELECT MAX(id) FROM vehicles), 1))"
)


def _advance_id_sequence(session: Session) -> None:
    """Move the PostgreSQL id sequence past explicitly inserted ids.

    SQLite AUTOINCREMENT already tracks the largest id ever used.
    """
    if session.get_bind().dialect.name == "postgresql":
        session.execute(_ADVANCE_ID_SEQUENCE)


def _to_vehicle(record: models.VehicleRecord) -> Vehicle:
    return Vehicle(
        id=record.id,
        attributes=copy.deepcopy(record.attributes or {}),
        created_at=_ensure_utc(record.created_at),
        modified_at=_ensure_utc(record.modified_at),
    )


class SqlVehicleStore:
    """Vehicle store backed by a SQLAlchemy session factory.

    Each call runs in its own transaction, so a save or delete of one record
    is never observed half-applied.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, vehicle_id: int) -> Optional[Vehicle]:
        if not is_storable_id(vehicle_id):
            return None
        try:
            with session_scope(self._session_factory) as session:
                record = session.get(models.VehicleRecord, vehicle_id)
                return _to_vehicle(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load vehicle {vehicle_id}", cause=exc) from exc

    def list(self) -> List[Vehicle]:
        try:
            with session_scope(self._session_factory) as session:
                records = session.scalars(select(models.VehicleRecord).order_by(models.VehicleRecord.id)).all()
                return [_to_vehicle(record) for record in records]
        except SQLAlchemyError as exc:
            raise StoreError("Failed to list vehicles", cause=exc) from exc

    def save(self, vehicle: Vehicle) -> Vehicle:
        now = datetime.now(timezone.utc)
        attributes = copy.deepcopy(dict(vehicle.attributes))
        try:
            with session_scope(self._session_factory) as session:
                record = None
                if vehicle.id is not None:
                    record = session.get(models.VehicleRecord, vehicle.id, with_for_update=True)
                if record is None:
                    record = models.VehicleRecord(
                        id=vehicle.id,
                        attributes=attributes,
                        created_at=now,
                        modified_at=now,
                    )
                    session.add(record)
                    action = "Created"
                    if vehicle.id is not None:
                        session.flush()
                        _advance_id_sequence(session)
                else:
                    # Full replace: attributes not present in the input are dropped
                    record.attributes = attributes
                    record.modified_at = now
                    action = "Replaced"
                session.flush()
                saved = _to_vehicle(record)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to save vehicle {vehicle.id}", cause=exc) from exc
        logger.info("%s vehicle %s", action, saved.id)
        return saved

    def delete(self, vehicle_id: int) -> bool:
        if not is_storable_id(vehicle_id):
            return False
        try:
            with session_scope(self._session_factory) as session:
                record = session.get(models.VehicleRecord, vehicle_id)
                if record is None:
                    return False
                session.delete(record)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to delete vehicle {vehicle_id}", cause=exc) from exc
        logger.info("Deleted vehicle %s", vehicle_id)
        return True
