"""Server-side validation of client-supplied task fields."""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from errand_board_service.exceptions import ValidationError
from errand_board_service.models import VALID_PAYMENT_METHODS, VALID_STATUSES

if TYPE_CHECKING:
    from errand_board_service.config import LimitsConfig

# The only keys ever read from a client-supplied task payload
TASK_FIELDS: tuple[str, ...] = ("title", "description", "location", "fee", "duration")
LOCATION_FIELDS: tuple[str, ...] = ("address", "lat", "lng")


def is_number(value: object) -> bool:
    """True for finite ints and floats. Booleans are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _require_text(data: dict[str, Any], field_name: str, max_length: int) -> str:
    """Non-blank text, stored exactly as the client sent it."""
    value = data.get(field_name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{field_name} must be a non-empty string", details={"field": field_name}
        )
    if len(value) > max_length:
        raise ValidationError(
            f"{field_name} must not exceed {max_length} characters",
            details={"field": field_name, "max_length": max_length},
        )
    return value


def validate_coordinates(value: object, field_prefix: str = "location") -> tuple[float, float]:
    """
    Check a ``{lat, lng}`` pair and return it as floats.

    Latitude must lie in [-90, 90] and longitude in [-180, 180].
    """
    if not isinstance(value, dict):
        raise ValidationError(
            f"{field_prefix} must be an object", details={"field": field_prefix}
        )
    lat = value.get("lat")
    lng = value.get("lng")
    if not is_number(lat) or not -90 <= lat <= 90:
        raise ValidationError(
            f"{field_prefix}.lat must be a number between -90 and 90",
            details={"field": f"{field_prefix}.lat"},
        )
    if not is_number(lng) or not -180 <= lng <= 180:
        raise ValidationError(
            f"{field_prefix}.lng must be a number between -180 and 180",
            details={"field": f"{field_prefix}.lng"},
        )
    return float(lat), float(lng)


def _validate_location(value: object, limits: LimitsConfig) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError("location must be an object", details={"field": "location"})

    address = _require_text(value, "address", limits.max_address_length)
    lat, lng = validate_coordinates(value)
    return {"address": address, "lat": lat, "lng": lng}


def parse_fee(value: object, max_fee: float) -> Decimal:
    """
    Parse a fee into an exact decimal amount.

    The fee must be a positive number with at most two fractional digits
    and no larger than ``max_fee``. Sub-cent amounts are rejected rather
    than rounded.
    """
    if not is_number(value):
        raise ValidationError("fee must be a number", details={"field": "fee"})
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError("fee must be a number", details={"field": "fee"}) from exc

    if amount <= 0:
        raise ValidationError("fee must be greater than 0", details={"field": "fee"})
    exponent = amount.normalize().as_tuple().exponent
    if isinstance(exponent, int) and exponent < -2:
        raise ValidationError(
            "fee must have at most 2 decimal places", details={"field": "fee"}
        )
    if amount > Decimal(str(max_fee)):
        raise ValidationError(
            f"fee must not exceed {max_fee}", details={"field": "fee", "max_fee": max_fee}
        )
    return amount


def parse_duration(value: object, max_hours: float) -> float:
    """Parse a duration in hours. Must be positive and within ``max_hours``."""
    if not is_number(value):
        raise ValidationError("duration must be a number", details={"field": "duration"})
    duration = float(value)  # type: ignore[arg-type]
    if duration <= 0:
        raise ValidationError("duration must be greater than 0", details={"field": "duration"})
    if duration > max_hours:
        raise ValidationError(
            f"duration must not exceed {max_hours} hours",
            details={"field": "duration", "max_duration_hours": max_hours},
        )
    return duration


def validate_task_fields(task_data: object, limits: LimitsConfig) -> dict[str, Any]:
    """
    Validate a task payload and return only the allow-listed fields.

    Keys outside ``TASK_FIELDS`` are dropped without error, so a client can
    never set ``requesterId``, ``status`` or ``marshalId`` through this path.
    """
    if not isinstance(task_data, dict):
        raise ValidationError("taskData must be an object", details={"field": "taskData"})

    missing = [name for name in TASK_FIELDS if name not in task_data]
    if missing:
        raise ValidationError(
            f"Missing required field: {missing[0]}", details={"missing": missing}
        )

    return {
        "title": _require_text(task_data, "title", limits.max_title_length),
        "description": _require_text(task_data, "description", limits.max_description_length),
        "location": _validate_location(task_data["location"], limits),
        "fee": parse_fee(task_data["fee"], limits.max_fee),
        "duration": parse_duration(task_data["duration"], limits.max_duration_hours),
    }


def validate_payment_method(value: object) -> str:
    if not isinstance(value, str) or value not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"paymentMethod must be one of {sorted(VALID_PAYMENT_METHODS)}",
            details={"field": "paymentMethod"},
        )
    return value


def validate_status_filter(value: str | None) -> str | None:
    if value is not None and value not in VALID_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(VALID_STATUSES)}", details={"field": "status"}
        )
    return value


def validate_comment(value: object, max_length: int) -> str | None:
    """Optional rating comment. Empty strings are stored as no comment."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("comment must be a string", details={"field": "comment"})
    if len(value) > max_length:
        raise ValidationError(
            f"comment must not exceed {max_length} characters",
            details={"field": "comment", "max_length": max_length},
        )
    return value.strip() or None
