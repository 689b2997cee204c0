"""User profile endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from errand_board_service.core.state import get_app_state
from errand_board_service.routers.validation import authenticate, parse_json_body

router = APIRouter()


@router.post("/api/users", status_code=201)
async def register_user(request: Request) -> JSONResponse:
    """Create the caller's profile."""
    identity = await authenticate(request)
    body = await request.body()
    data = {} if body == b"" else parse_json_body(body)

    state = get_app_state()
    if state.user_registry is None:
        msg = "UserRegistry not initialized"
        raise RuntimeError(msg)

    user = await state.user_registry.register_user(
        identity, data.get("role"), data.get("displayName")
    )
    return JSONResponse(status_code=201, content=user)


@router.get("/api/users/me")
async def get_me(request: Request) -> dict[str, Any]:
    """Return the caller's profile."""
    identity = await authenticate(request)

    state = get_app_state()
    if state.user_registry is None:
        msg = "UserRegistry not initialized"
        raise RuntimeError(msg)

    return await state.user_registry.get_user(identity.uid)


@router.put("/api/users/me/location")
async def update_my_location(request: Request) -> dict[str, Any]:
    """Report the calling marshal's current position."""
    identity = await authenticate(request)
    body = await request.body()
    data = {} if body == b"" else parse_json_body(body)

    state = get_app_state()
    if state.user_registry is None:
        msg = "UserRegistry not initialized"
        raise RuntimeError(msg)

    return await state.user_registry.update_location(identity, data)
