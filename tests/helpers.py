"""Shared test helpers for seeding users and building task payloads."""

from __future__ import annotations

from typing import TYPE_CHECKING

from errand_board_service.models import USERS, now_iso

if TYPE_CHECKING:
    from errand_board_service.services.document_store import DocumentStore

REQUESTER_ID = "u-requester"
MARSHAL_ID = "u-marshal"
OTHER_MARSHAL_ID = "u-marshal-2"


def seed_user(
    store: DocumentStore,
    uid: str,
    role: str,
    balance: str = "0.00",
    average_rating: float | None = None,
    rating_count: int = 0,
) -> None:
    """Write a user profile straight into the store."""
    store.set(
        USERS,
        uid,
        {
            "id": uid,
            "role": role,
            "displayName": None,
            "balance": balance,
            "averageRating": average_rating,
            "ratingCount": rating_count,
            "createdAt": now_iso(),
        },
    )


def task_payload(**overrides: object) -> dict[str, object]:
    """A valid client task payload."""
    payload: dict[str, object] = {
        "title": "Queue for concert tickets",
        "description": "Stand in line at the box office from 8am",
        "location": {"address": "1 Main St", "lat": 14.5995, "lng": 120.9842},
        "fee": 50,
        "duration": 2,
    }
    payload.update(overrides)
    return payload
