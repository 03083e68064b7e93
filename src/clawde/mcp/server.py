"""MCP server exposing ClawDE project state and change operations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import Context, FastMCP

from clawde import serialize
from clawde.core import changes as changes_mod
from clawde.core.manager import AdapterManager, get_manager
from clawde.integrations import beads as beads_mod
from clawde.models import ProjectState, get_ready_tasks


@dataclass
class AppContext:
    manager: AdapterManager


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Load project state and start watching on startup, stop on shutdown."""
    manager = get_manager()
    await manager.ensure_state()
    try:
        yield AppContext(manager=manager)
    finally:
        manager.stop_watching()


mcp = FastMCP("clawde", lifespan=app_lifespan)


def _manager(ctx: Context) -> AdapterManager:
    return ctx.request_context.lifespan_context.manager


async def _state(ctx: Context) -> ProjectState:
    return await _manager(ctx).ensure_state()


# ── Read Tools ────────────────────────────────────────────────────────────────


@mcp.tool()
async def project_status(ctx: Context) -> dict:
    """Project name, detected sources, and task/change counts by status."""
    return serialize.summary(await _state(ctx))


@mcp.tool()
async def list_tasks(ctx: Context, status: str | None = None) -> list[dict]:
    """List tasks, optionally filtered by status (open, ready, in-progress, in-review, blocked, done)."""
    state = await _state(ctx)
    return [serialize.task_to_dict(t) for t in state.tasks if not status or t.status == status]


@mcp.tool(name="get_ready_tasks")
async def ready_tasks(ctx: Context) -> list[dict]:
    """Tasks that are open and whose dependencies are all done."""
    state = await _state(ctx)
    return [serialize.task_to_dict(t) for t in get_ready_tasks(state.tasks)]


@mcp.tool()
async def get_task(ctx: Context, task_id: str) -> dict:
    """Get a task by id."""
    state = await _state(ctx)
    for task in state.tasks:
        if task.id == task_id:
            return serialize.task_to_dict(task)
    return {"error": f"Task not found: {task_id}"}


@mcp.tool()
async def list_changes(ctx: Context) -> list[dict]:
    """List OpenSpec changes with their artifacts."""
    state = await _state(ctx)
    return [serialize.change_to_dict(c) for c in state.changes]


@mcp.tool()
async def get_change(ctx: Context, change_id: str) -> dict:
    """Get a change including the content of its artifacts."""
    state = await _state(ctx)
    for change in state.changes:
        if change.id == change_id:
            return serialize.change_to_dict(change, include_content=True)
    return {"error": f"Change not found: {change_id}"}


@mcp.tool()
async def recent_commits(ctx: Context, limit: int = 20) -> list[dict]:
    """Most recent commits in the project repository."""
    commits = await _manager(ctx).git.get_commits(limit=limit)
    return [serialize.commit_to_dict(c) for c in commits]


# ── Change Tools ──────────────────────────────────────────────────────────────


@mcp.tool()
async def create_change(ctx: Context, name: str, description: str) -> dict:
    """Create a new change proposal under openspec/changes."""
    try:
        created = await asyncio.to_thread(
            changes_mod.create_change, _manager(ctx).root, name, description
        )
    except changes_mod.ChangeError as e:
        return {"error": str(e)}
    return {"change_id": created.change_id, "path": created.path}


@mcp.tool()
async def plan_change(ctx: Context, change_id: str, dry_run: bool = False) -> dict:
    """Generate tasks.md for a change from its proposal (template when no agent answers)."""
    manager = _manager(ctx)
    state = await _state(ctx)
    default_agent = state.project.config.settings.default_agent
    agent = next((a for a in state.project.config.agents if a.id == default_agent), None)
    try:
        result = await changes_mod.plan_change(
            manager.root, change_id, dry_run=dry_run,
            agent=agent, agent_service=manager.agent_service if agent else None,
        )
    except changes_mod.ChangeError as e:
        return {"error": str(e)}
    return {
        "change_id": result.change_id,
        "task_count": result.task_count,
        "tasks_path": result.tasks_path,
        "used_fallback": result.used_fallback,
        "content": result.content,
    }


@mcp.tool()
async def seed_change(ctx: Context, change_id: str, dry_run: bool = False) -> dict:
    """Create beads issues (with dependencies) from a change's tasks.md."""
    manager = _manager(ctx)
    state = await _state(ctx)
    try:
        result = await asyncio.to_thread(
            changes_mod.seed_change, manager.root, change_id,
            state.project.has_beads, dry_run=dry_run,
        )
    except changes_mod.ChangeError as e:
        return {"error": str(e)}
    return {
        "success": result.success,
        "task_ids": result.task_ids,
        "dependencies": result.dependencies,
        "errors": result.errors,
    }


@mcp.tool()
async def update_task(
    ctx: Context,
    task_id: str,
    status: str | None = None,
    assignee: str | None = None,
    priority: str | None = None,
    title: str | None = None,
) -> dict:
    """Update a task's status, assignee, priority (P0-P3) or title."""
    try:
        result = await asyncio.to_thread(
            beads_mod.update_task, _manager(ctx).root, task_id,
            assignee=assignee, status=status, priority=priority, title=title,
        )
    except (ValueError, beads_mod.BeadsError) as e:
        return {"error": str(e)}
    return {"success": True, "task_id": task_id, "result": result}
