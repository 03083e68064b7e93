"""Web API and dashboard for ClawDE."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, StreamingResponse
from starlette.routing import Route

from clawde import serialize
from clawde.core import changes as changes_mod
from clawde.core.agents import AgentService, get_agent_service
from clawde.core.manager import REFRESH_CATEGORIES, get_manager
from clawde.integrations import beads as beads_mod
from clawde.models import TASK_STATUSES, AgentConfig, ProjectState, get_ready_tasks
from clawde.web.dashboard import get_dashboard_html
from clawde.web.stream import event_stream

logger = logging.getLogger(__name__)


class BadRequest(Exception):
    pass


async def _state() -> ProjectState:
    return await get_manager().ensure_state()


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def _body(request: Request) -> dict:
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise BadRequest("Request body is not valid JSON") from None
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def _agent_service() -> AgentService:
    return get_manager().agent_service or get_agent_service()


def _find_agent(state: ProjectState, agent_id: str | None) -> AgentConfig | None:
    agent_id = agent_id or state.project.config.settings.default_agent
    for agent in state.project.config.agents:
        if agent.id == agent_id:
            return agent
    return None


# ── Handlers ──────────────────────────────────────────────────────────────────


async def index(request: Request):
    return HTMLResponse(get_dashboard_html())


async def api_project(request: Request):
    return JSONResponse(serialize.summary(await _state()))


async def api_list_tasks(request: Request):
    status = request.query_params.get("status")
    if status and status not in TASK_STATUSES:
        return _error(f"Invalid status: {status}", 400)
    state = await _state()
    tasks = [t for t in state.tasks if not status or t.status == status]
    return JSONResponse({"tasks": [serialize.task_to_dict(t) for t in tasks]})


async def api_ready_tasks(request: Request):
    state = await _state()
    return JSONResponse({"tasks": [serialize.task_to_dict(t) for t in get_ready_tasks(state.tasks)]})


async def api_get_task(request: Request):
    task_id = request.path_params["task_id"]
    state = await _state()
    for task in state.tasks:
        if task.id == task_id:
            return JSONResponse(serialize.task_to_dict(task))
    return _error("Task not found", 404)


async def api_update_task(request: Request):
    task_id = request.path_params["task_id"]
    manager = get_manager()
    if manager.mock_mode:
        return _error("Task updates are disabled in mock mode", 400)
    state = await _state()
    if not state.project.has_beads:
        return _error("Beads not initialized in this project", 400)

    try:
        body = await _body(request)
        fields = {k: body.get(k) for k in ("assignee", "status", "priority", "title")}
        result = await asyncio.to_thread(beads_mod.update_task, manager.root, task_id, **fields)
    except (BadRequest, ValueError) as e:
        return _error(str(e), 400)
    except beads_mod.BeadsNotFoundError:
        return _error("Task not found", 404)
    except beads_mod.BeadsError as e:
        logger.warning("Task update for %s failed: %s", task_id, e)
        return _error(str(e), 500)
    return JSONResponse({"success": True, "task_id": task_id, "result": result})


async def api_list_changes(request: Request):
    state = await _state()
    return JSONResponse({"changes": [serialize.change_to_dict(c) for c in state.changes]})


async def api_create_change(request: Request):
    try:
        body = await _body(request)
        created = await asyncio.to_thread(
            changes_mod.create_change,
            get_manager().root,
            str(body.get("name") or ""),
            str(body.get("description") or ""),
        )
    except (BadRequest, changes_mod.InvalidChangeError) as e:
        return _error(str(e), 400)
    except changes_mod.ChangeExistsError as e:
        return _error(str(e), 409)
    return JSONResponse({"change_id": created.change_id, "path": created.path}, status_code=201)


async def api_get_change(request: Request):
    change_id = request.path_params["change_id"]
    state = await _state()
    for change in state.changes:
        if change.id == change_id:
            return JSONResponse(serialize.change_to_dict(change, include_content=True))
    return _error("Change not found", 404)


async def api_plan_change(request: Request):
    change_id = request.path_params["change_id"]
    try:
        body = await _body(request)
        state = await _state()
        agent = _find_agent(state, body.get("agent_id"))
        result = await changes_mod.plan_change(
            get_manager().root,
            change_id,
            dry_run=bool(body.get("dry_run")),
            agent=agent,
            agent_service=_agent_service() if agent else None,
        )
    except (BadRequest, changes_mod.InvalidChangeError) as e:
        return _error(str(e), 400)
    except changes_mod.ChangeNotFoundError as e:
        return _error(str(e), 404)
    return JSONResponse({
        "change_id": result.change_id,
        "content": result.content,
        "task_count": result.task_count,
        "tasks_path": result.tasks_path,
        "dry_run": result.dry_run,
        "used_fallback": result.used_fallback,
    })


async def api_seed_change(request: Request):
    change_id = request.path_params["change_id"]
    try:
        body = await _body(request)
        state = await _state()
        result = await asyncio.to_thread(
            changes_mod.seed_change,
            get_manager().root,
            change_id,
            state.project.has_beads,
            dry_run=bool(body.get("dry_run")),
            prefix=body.get("prefix"),
        )
    except changes_mod.ChangeNotFoundError as e:
        return _error(str(e), 404)
    except (BadRequest, changes_mod.ChangeError) as e:
        return _error(str(e), 400)
    return JSONResponse({
        "success": result.success,
        "change_id": result.change_id,
        "dry_run": result.dry_run,
        "tasks": [
            {"id": t.id, "title": t.title, "deps": t.deps, "phase": t.phase} for t in result.tasks
        ],
        "created": result.created,
        "dependencies": result.dependencies,
        "task_ids": result.task_ids,
        "errors": result.errors,
    })


async def api_list_events(request: Request):
    try:
        limit = int(request.query_params.get("limit", "100"))
    except ValueError:
        return _error("limit must be an integer", 400)
    if limit < 0:
        return _error("limit must not be negative", 400)
    state = await _state()
    return JSONResponse({"events": [serialize.event_to_dict(e) for e in state.events[:limit]]})


async def api_diff(request: Request):
    ref = request.query_params.get("ref")
    if ref and ref.startswith("-"):
        return _error(f"Invalid ref: {ref}", 400)
    await _state()
    files = await get_manager().git.get_diff(ref)
    return JSONResponse({"files": [serialize.diff_to_dict(f) for f in files]})


async def api_refresh(request: Request):
    try:
        body = await _body(request)
    except BadRequest as e:
        return _error(str(e), 400)
    category = body.get("category", "any")
    if category not in REFRESH_CATEGORIES:
        return _error(f"Unknown refresh category: {category}", 400)

    manager = get_manager()
    await manager.ensure_state()
    state = await manager.refresh(category)
    if state is None:
        return _error("Refresh failed, previous state kept", 500)
    return JSONResponse(serialize.summary(state))


async def api_chat(request: Request):
    try:
        body = await _body(request)
    except BadRequest as e:
        return _error(str(e), 400)
    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        return _error("messages must be a non-empty list", 400)

    state = await _state()
    agent = _find_agent(state, body.get("agent_id"))
    if agent is None:
        return _error("Agent not found", 404)

    chunks = _agent_service().send_message(agent, messages, state.project)
    return StreamingResponse(chunks, media_type="text/plain; charset=utf-8")


async def api_cancel_agent(request: Request):
    agent_id = request.path_params["agent_id"]
    _agent_service().cancel(agent_id)
    return JSONResponse({"success": True, "agent_id": agent_id})


# ── App ───────────────────────────────────────────────────────────────────────


async def server_error(request: Request, exc: Exception):
    logger.exception("Unhandled error for %s %s", request.method, request.url.path)
    return _error("Internal server error", 500)


@asynccontextmanager
async def lifespan(app: Starlette):
    try:
        yield
    finally:
        get_manager().stop_watching()


def create_app() -> Starlette:
    routes = [
        Route("/", index),
        Route("/api/project", api_project),
        Route("/api/tasks", api_list_tasks),
        Route("/api/tasks/ready", api_ready_tasks),
        Route("/api/tasks/{task_id}", api_get_task, methods=["GET"]),
        Route("/api/tasks/{task_id}", api_update_task, methods=["PATCH"]),
        Route("/api/changes", api_list_changes, methods=["GET"]),
        Route("/api/changes", api_create_change, methods=["POST"]),
        Route("/api/changes/{change_id}", api_get_change),
        Route("/api/changes/{change_id}/plan", api_plan_change, methods=["POST"]),
        Route("/api/changes/{change_id}/seed", api_seed_change, methods=["POST"]),
        Route("/api/events", api_list_events),
        Route("/api/events/stream", event_stream),
        Route("/api/diff", api_diff),
        Route("/api/refresh", api_refresh, methods=["POST"]),
        Route("/api/chat", api_chat, methods=["POST"]),
        Route("/api/agents/{agent_id}/cancel", api_cancel_agent, methods=["POST"]),
    ]
    return Starlette(
        routes=routes, lifespan=lifespan, exception_handlers={Exception: server_error}
    )


def run_server(host: str = "127.0.0.1", port: int = 8787):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
