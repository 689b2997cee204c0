"""Unit tests for the task change SSE generator."""

from __future__ import annotations

import json
from contextlib import aclosing

import pytest

from errand_board_service.models import PAYMENT_PREPAID, STATUS_IN_PROGRESS, STATUS_OPEN
from errand_board_service.services.task_stream import stream_task_changes
from tests.helpers import MARSHAL_ID, task_payload


async def _collect(generator, count: int) -> list[dict]:
    items = []
    async with aclosing(generator) as stream:
        async for item in stream:
            items.append(item)
            if len(items) == count:
                break
    return items


@pytest.mark.unit
async def test_stream_starts_with_retry_directive(store) -> None:
    items = await _collect(stream_task_changes(store, 0, 0.01, 60), 1)
    assert items == [{"retry": 3000}]


@pytest.mark.unit
async def test_stream_emits_task_changes_with_sequence_ids(
    store, task_manager, seeded_users, requester, marshal
) -> None:
    task = await task_manager.create_task(requester, task_payload(), PAYMENT_PREPAID)
    await task_manager.accept_task(marshal, task["id"])

    items = await _collect(stream_task_changes(store, 0, 0.01, 60), 3)
    events = items[1:]

    assert [e["event"] for e in events] == ["task_changed", "task_changed"]
    first, second = (json.loads(e["data"]) for e in events)
    assert first["task"]["status"] == STATUS_OPEN
    assert second["task"]["status"] == STATUS_IN_PROGRESS
    assert second["task"]["marshalId"] == MARSHAL_ID
    assert first["task"]["fee"] == 50
    assert int(events[0]["id"]) == first["sequence"]
    assert int(events[1]["id"]) > int(events[0]["id"])


@pytest.mark.unit
async def test_stream_skips_user_documents(
    store, task_manager, seeded_users, requester
) -> None:
    # seeded_users wrote three user documents before the task
    task = await task_manager.create_task(requester, task_payload(), PAYMENT_PREPAID)

    items = await _collect(stream_task_changes(store, 0, 0.01, 60), 2)

    payload = json.loads(items[1]["data"])
    assert payload["task"]["id"] == task["id"]
    assert items[1]["id"] == "4"


@pytest.mark.unit
async def test_stream_resumes_after_last_event_id(
    store, task_manager, seeded_users, requester
) -> None:
    first = await task_manager.create_task(requester, task_payload(title="One"), PAYMENT_PREPAID)
    second = await task_manager.create_task(requester, task_payload(title="Two"), PAYMENT_PREPAID)

    initial = await _collect(stream_task_changes(store, 0, 0.01, 60), 2)
    resume_from = int(initial[1]["id"])
    assert json.loads(initial[1]["data"])["task"]["id"] == first["id"]

    resumed = await _collect(stream_task_changes(store, resume_from, 0.01, 60), 2)
    assert json.loads(resumed[1]["data"])["task"]["id"] == second["id"]


@pytest.mark.unit
async def test_stream_sends_keepalive_when_idle(store) -> None:
    items = await _collect(stream_task_changes(store, 0, 0.01, 0), 2)
    assert items[1] == {"comment": "keepalive"}
