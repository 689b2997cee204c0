"""Rating endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from errand_board_service.core.state import get_app_state
from errand_board_service.routers.validation import authenticate, parse_json_body

router = APIRouter()


@router.post("/api/tasks/{task_id}/ratings", status_code=201)
async def add_rating(task_id: str, request: Request) -> JSONResponse:
    """Rate the other party of a completed task."""
    identity = await authenticate(request)
    body = await request.body()
    data = {} if body == b"" else parse_json_body(body)

    state = get_app_state()
    if state.rating_aggregator is None:
        msg = "RatingAggregator not initialized"
        raise RuntimeError(msg)

    rating = await state.rating_aggregator.add_rating(
        identity,
        task_id,
        rated_user_id=data.get("ratedUserId"),
        score=data.get("score"),
        comment=data.get("comment"),
    )
    return JSONResponse(status_code=201, content=rating)


@router.get("/api/users/{user_id}/ratings")
async def list_ratings(user_id: str, request: Request) -> dict[str, Any]:
    """Ratings received by a user, oldest first."""
    await authenticate(request)

    state = get_app_state()
    if state.rating_aggregator is None:
        msg = "RatingAggregator not initialized"
        raise RuntimeError(msg)

    return {"ratings": await state.rating_aggregator.list_ratings(user_id)}
