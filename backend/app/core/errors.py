from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from backend.app.services.validation import Violation


class CatalogError(Exception):
    """Base exception for failures surfaced to API callers."""

    status_code = 500
    kind = "internal_error"


class NotFoundError(CatalogError):
    status_code = 404
    kind = "not_found"

    def __init__(self, vehicle_id: int):
        super().__init__(f"Vehicle {vehicle_id} not found")
        self.vehicle_id = vehicle_id


class ValidationFailedError(CatalogError):
    """Raised when a write payload breaks one or more vehicle constraints."""

    status_code = 422
    kind = "validation_error"

    def __init__(self, violations: List[Violation]):
        summary = "; ".join(f"{v.field}: {v.message}" for v in violations)
        super().__init__(summary or "Vehicle payload is invalid")
        self.violations = list(violations)


class InternalError(CatalogError):
    pass


class StoreError(InternalError):
    """Raised when the vehicle store fails underneath an operation."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

