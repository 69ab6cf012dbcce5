from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Mapping

REQUIRED_TEXT_FIELDS = ("make", "model")
CONDITIONS = {"NEW", "USED"}
EARLIEST_MODEL_YEAR = 1886


@dataclass(frozen=True)
class Violation:
    field: str
    message: str


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_vehicle(attributes: Mapping[str, Any]) -> List[Violation]:
    """Check a vehicle's attributes before a write.

    Returns every violation found; an empty list means the payload may be
    stored. Unknown attributes are accepted as-is.
    """
    if not isinstance(attributes, Mapping):
        return [Violation("attributes", "must be an object")]

    violations: List[Violation] = []
    for field in REQUIRED_TEXT_FIELDS:
        value = attributes.get(field)
        if value is None:
            violations.append(Violation(field, "is required"))
        elif not isinstance(value, str) or not value.strip():
            violations.append(Violation(field, "must be a non-blank string"))

    year = attributes.get("year")
    if year is not None:
        latest = datetime.now(timezone.utc).year + 1
        if not _is_int(year):
            violations.append(Violation("year", "must be an integer"))
        elif not EARLIEST_MODEL_YEAR <= year <= latest:
            violations.append(Violation("year", f"must be between {EARLIEST_MODEL_YEAR} and {latest}"))

    mileage = attributes.get("mileage")
    if mileage is not None and (not _is_int(mileage) or mileage < 0):
        violations.append(Violation("mileage", "must be a non-negative integer"))

    condition = attributes.get("condition")
    if condition is not None and condition not in CONDITIONS:
        violations.append(Violation("condition", f"must be one of {', '.join(sorted(CONDITIONS))}"))

    return violations
