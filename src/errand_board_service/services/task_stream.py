"""Server-sent event stream of task changes."""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any

from errand_board_service.models import TASKS
from errand_board_service.services.task_manager import task_to_response

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from errand_board_service.services.document_store import DocumentStore

BATCH_SIZE = 100


async def stream_task_changes(
    store: DocumentStore,
    last_event_id: int,
    poll_interval: float,
    keepalive_interval: float,
) -> AsyncIterator[dict[str, Any]]:
    """
    Async generator that yields SSE events for every committed task write.

    Event ids are change sequence numbers, so a client reconnecting with
    ``Last-Event-ID`` resumes exactly where it stopped.
    """
    cursor = last_event_id
    last_keepalive = time.monotonic()

    # Send retry directive
    yield {"retry": 3000}

    while True:
        events = store.changes(after_sequence=cursor, collection=TASKS, limit=BATCH_SIZE)

        if events:
            for event in events:
                if event.data is not None:
                    yield {
                        "event": "task_changed",
                        "data": json.dumps(
                            {
                                "sequence": event.sequence,
                                "changedAt": event.changed_at,
                                "task": task_to_response(event.data),
                            }
                        ),
                        "id": str(event.sequence),
                    }
                cursor = event.sequence
            last_keepalive = time.monotonic()
        else:
            elapsed = time.monotonic() - last_keepalive
            if elapsed >= keepalive_interval:
                yield {"comment": "keepalive"}
                last_keepalive = time.monotonic()
            await asyncio.sleep(poll_interval)
