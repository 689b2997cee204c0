"""Domain constants and small value types shared by the service layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

# Collection names in the document store
TASKS = "tasks"
USERS = "users"
RATINGS = "ratings"

# Task.status
STATUS_OPEN = "Open"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"
VALID_STATUSES = frozenset({STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_COMPLETED})

# Task.paymentMethod
PAYMENT_PREPAID = "Pre-Paid"
PAYMENT_ON_THE_SPOT = "On the Spot"
VALID_PAYMENT_METHODS = frozenset({PAYMENT_PREPAID, PAYMENT_ON_THE_SPOT})

# User.role
ROLE_REQUESTER = "requester"
ROLE_MARSHAL = "marshal"
VALID_ROLES = frozenset({ROLE_REQUESTER, ROLE_MARSHAL})

MIN_SCORE = 1
MAX_SCORE = 5

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class Identity:
    """A caller identity verified by the identity oracle."""

    uid: str
    claims: dict[str, Any] = field(default_factory=dict)


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def to_money(value: object) -> Decimal:
    """Parse a stored amount (decimal string or number) into a Decimal."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def format_money(amount: Decimal) -> str:
    """Canonical storage form of an amount: two fractional digits."""
    return str(amount.quantize(CENTS))


def money_to_json(value: object) -> int | float:
    """Render a stored amount as a JSON number."""
    amount = to_money(value)
    if amount % 1 == 0:
        return int(amount)
    return float(amount)
