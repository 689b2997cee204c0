"""Shared request parsing helpers for routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from errand_board_service.core.state import get_app_state
from errand_board_service.exceptions import ValidationError

if TYPE_CHECKING:
    from fastapi import Request

    from errand_board_service.models import Identity


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ValidationError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body is not valid JSON") from exc

    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    return data


def parse_int_param(raw: str | None, name: str) -> int | None:
    """Parse an optional integer query parameter."""
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer", details={"field": name}) from exc


async def authenticate(request: Request) -> Identity:
    """Verify the request's bearer token and return the caller identity."""
    state = get_app_state()
    if state.token_validator is None:
        msg = "TokenValidator not initialized"
        raise RuntimeError(msg)
    return await state.token_validator.authenticate(request.headers.get("authorization"))
