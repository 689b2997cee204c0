"""Task lifecycle endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from errand_board_service.core.state import get_app_state
from errand_board_service.routers.validation import (
    authenticate,
    parse_int_param,
    parse_json_body,
)
from errand_board_service.services.task_stream import stream_task_changes

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /api/tasks: create task
# ---------------------------------------------------------------------------


@router.post("/api/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Post a new errand on behalf of the authenticated requester."""
    identity = await authenticate(request)
    body = await request.body()
    data = {} if body == b"" else parse_json_body(body)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    result = await state.task_manager.create_task(
        identity, data.get("taskData"), data.get("paymentMethod")
    )
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /api/tasks: list tasks (MUST be before GET /api/tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/api/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks with optional filters, newest first."""
    await authenticate(request)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    tasks = await state.task_manager.list_tasks(
        status=request.query_params.get("status"),
        requester_id=request.query_params.get("requesterId"),
        marshal_id=request.query_params.get("marshalId"),
        limit=parse_int_param(request.query_params.get("limit"), "limit"),
        offset=parse_int_param(request.query_params.get("offset"), "offset"),
    )
    return {"tasks": tasks}


# ---------------------------------------------------------------------------
# GET /api/tasks/stream: live task changes (MUST be before GET /api/tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/api/tasks/stream")
async def stream_tasks(request: Request) -> EventSourceResponse:
    """Server-Sent Events stream of task changes."""
    await authenticate(request)
    last_event_id = parse_int_param(
        request.headers.get("last-event-id") or request.query_params.get("lastEventId"),
        "lastEventId",
    )

    state = get_app_state()
    if state.store is None or state.stream_config is None:
        msg = "DocumentStore not initialized"
        raise RuntimeError(msg)

    return EventSourceResponse(
        stream_task_changes(
            state.store,
            last_event_id or 0,
            state.stream_config.poll_interval_seconds,
            state.stream_config.keepalive_interval_seconds,
        ),
        headers={"X-Accel-Buffering": "no"},
    )


@router.get("/api/tasks/{task_id}")
async def get_task(task_id: str, request: Request) -> dict[str, Any]:
    """Get a single task."""
    await authenticate(request)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    return await state.task_manager.get_task(task_id)


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------


@router.post("/api/tasks/{task_id}/accept")
async def accept_task(task_id: str, request: Request) -> JSONResponse:
    """Assign an open task to the calling marshal."""
    identity = await authenticate(request)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    await state.task_manager.accept_task(identity, task_id)
    return JSONResponse(
        status_code=200,
        content={"success": True, "message": "Task accepted successfully."},
    )


@router.post("/api/tasks/{task_id}/complete")
async def complete_task(task_id: str, request: Request) -> JSONResponse:
    """Complete a task in progress and settle PREPAID fees."""
    identity = await authenticate(request)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    await state.task_manager.complete_task(identity, task_id)
    return JSONResponse(
        status_code=200,
        content={"success": True, "message": "Task completed and payment processed."},
    )


# ---------------------------------------------------------------------------
# GET /api/tasks/{task_id}/marshal-location: live tracking for the requester
# ---------------------------------------------------------------------------


@router.get("/api/tasks/{task_id}/marshal-location")
async def get_marshal_location(task_id: str, request: Request) -> dict[str, Any]:
    identity = await authenticate(request)

    state = get_app_state()
    if state.user_registry is None:
        msg = "UserRegistry not initialized"
        raise RuntimeError(msg)

    return await state.user_registry.get_marshal_location(identity, task_id)
