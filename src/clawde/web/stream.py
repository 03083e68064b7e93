"""Server-sent event stream of project state changes.

Each connection owns one coordinator subscription and one heartbeat task.
Both are released when the client goes away.
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator

from sse_starlette.sse import EventSourceResponse
from starlette.requests import Request

from clawde.core.manager import AdapterManager, get_manager
from clawde.config import get_config
from clawde.models import ProjectState, count_by_status

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_SECONDS = 30.0

_HEARTBEAT = object()


def init_payload(state: ProjectState) -> dict:
    return {
        "tasks": len(state.tasks),
        "changes": len(state.changes),
        "events": len(state.events),
        "agents": len(state.agents),
        "project": state.project.name,
    }


def update_payload(state: ProjectState) -> dict:
    return {
        "timestamp": int(time.time() * 1000),
        "tasks": len(state.tasks),
        "changes": len(state.changes),
        "events": len(state.events),
        "tasks_by_status": count_by_status(state.tasks),
        "changes_by_status": count_by_status(state.changes),
    }


def _event(name: str, data: dict) -> dict:
    return {"event": name, "data": json.dumps(data)}


async def state_events(
    manager: AdapterManager,
    heartbeat_interval: float = DEFAULT_HEARTBEAT_SECONDS,
) -> AsyncIterator[dict]:
    """Yield init, update and heartbeat events for one client."""
    state = manager.get_state()
    if state is None:
        try:
            state = await manager.ensure_state()
        except Exception as e:
            logger.exception("Could not initialize project state for stream")
            yield _event("error", {"error": str(e)})
            return

    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = manager.on_refresh(queue.put_nowait)

    async def beat():
        while True:
            await asyncio.sleep(heartbeat_interval)
            queue.put_nowait(_HEARTBEAT)

    heartbeat = asyncio.create_task(beat(), name="sse-heartbeat")
    try:
        yield _event("init", init_payload(state))
        while True:
            item = await queue.get()
            if item is _HEARTBEAT:
                yield _event("heartbeat", {"ts": int(time.time() * 1000)})
            else:
                yield _event("update", update_payload(item))
    finally:
        heartbeat.cancel()
        unsubscribe()


async def event_stream(request: Request) -> EventSourceResponse:
    config = get_config()
    return EventSourceResponse(
        state_events(get_manager(), heartbeat_interval=config.heartbeat_seconds)
    )
