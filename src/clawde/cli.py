"""CLI entry point for ClawDE."""

import asyncio
import json
import logging
import sys

import click

from clawde import serialize
from clawde.config import get_config
from clawde.core import changes as changes_mod
from clawde.core import project as project_mod
from clawde.core.agents import AgentService
from clawde.core.manager import AdapterManager
from clawde.integrations import beads as beads_mod
from clawde.models import TASK_PRIORITIES, TASK_STATUSES, ProjectState, get_ready_tasks

STATUS_ICONS = {
    "open": "○",
    "ready": "◎",
    "in-progress": "●",
    "in-review": "◐",
    "blocked": "✗",
    "done": "✓",
}


def _manager(ctx: click.Context) -> AdapterManager:
    config = get_config()
    return AdapterManager(
        ctx.obj["root"],
        mock_mode=config.mock_mode,
        agent_service=AgentService(),
        git_log_limit=config.git_log_limit,
        command_timeout=config.command_timeout,
    )


def _load_state(ctx: click.Context) -> ProjectState:
    return asyncio.run(_manager(ctx).ensure_state(watch=False))


def _fail(message: str):
    click.echo(message, err=True)
    sys.exit(1)


@click.group()
@click.option("--root", type=click.Path(file_okay=False), default=None,
              help="Project root (defaults to CLAWDE_ROOT or the current directory)")
@click.option("--verbose", "-v", is_flag=True, help="Log at INFO level")
@click.pass_context
def main(ctx, root, verbose):
    """clawde - ClawDE project dashboard CLI"""
    config = get_config()
    level = logging.INFO if verbose else getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["root"] = str(root or config.project_root)


# ── Overview Commands ─────────────────────────────────────────────────────────


@main.command("status")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
@click.pass_context
def status_command(ctx, json_output):
    """Show project sources and counts."""
    state = _load_state(ctx)
    summary = serialize.summary(state)
    if json_output:
        click.echo(json.dumps(summary, indent=2))
        return

    project = state.project
    click.echo(f"Project: {project.name}")
    click.echo(f"  Root: {project.root}")
    sources = [name for name, present in (
        ("openspec", project.has_openspec),
        ("beads", project.has_beads),
        ("git", project.has_git),
        ("config", project.has_clawde_config),
    ) if present]
    click.echo(f"  Sources: {', '.join(sources) or 'none'}")
    click.echo(f"  Tasks: {len(state.tasks)}")
    for status, count in sorted(summary["tasks_by_status"].items()):
        click.echo(f"    {STATUS_ICONS.get(status, '?')} {status}: {count}")
    click.echo(f"  Changes: {len(state.changes)}")
    click.echo(f"  Events: {len(state.events)}")
    for agent in state.agents:
        click.echo(f"  Agent {agent.id}: {agent.name} ({agent.connection_status})")


@main.command("tasks")
@click.option("--status", type=click.Choice(TASK_STATUSES), default=None, help="Filter by status")
@click.option("--ready", is_flag=True, help="Only tasks whose dependencies are done")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
@click.pass_context
def tasks_command(ctx, status, ready, json_output):
    """List tasks."""
    state = _load_state(ctx)
    tasks = get_ready_tasks(state.tasks) if ready else list(state.tasks)
    if status:
        tasks = [t for t in tasks if t.status == status]

    if json_output:
        click.echo(json.dumps([serialize.task_to_dict(t) for t in tasks], indent=2))
        return

    if not tasks:
        click.echo("No tasks found.")
        return

    for task in tasks:
        icon = STATUS_ICONS.get(task.status, "?")
        deps = f" [depends: {', '.join(task.deps)}]" if task.deps else ""
        who = f" @{task.assignee}" if task.assignee else ""
        click.echo(f"  {icon} {task.priority} {task.id}: {task.title} ({task.status}){who}{deps}")


@main.command("changes")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
@click.pass_context
def changes_command(ctx, json_output):
    """List OpenSpec changes."""
    state = _load_state(ctx)
    if json_output:
        click.echo(json.dumps([serialize.change_to_dict(c) for c in state.changes], indent=2))
        return

    if not state.changes:
        click.echo("No changes found.")
        return

    for change in state.changes:
        kinds = ", ".join(
            a.type + (" (stale)" if a.stale else "") for a in change.artifacts
        )
        click.echo(f"  {change.id}: {change.name} ({change.status}) [{kinds or 'no artifacts'}]")


# ── Change Commands ───────────────────────────────────────────────────────────


@main.command("new")
@click.argument("name")
@click.argument("description")
@click.pass_context
def new_change(ctx, name, description):
    """Create a new change proposal."""
    try:
        created = changes_mod.create_change(ctx.obj["root"], name, description)
    except changes_mod.ChangeError as e:
        _fail(str(e))
    click.echo(f"Created change: {created.change_id}")
    click.echo(f"  Proposal: {created.path}/proposal.md")
    click.echo(f"  Next: clawde plan {created.change_id}")


@main.command("plan")
@click.argument("change_id")
@click.option("--dry-run", is_flag=True, help="Print tasks.md instead of writing it")
@click.option("--agent", "agent_id", default=None, help="Agent to ask (defaults to settings)")
@click.pass_context
def plan_command(ctx, change_id, dry_run, agent_id):
    """Generate tasks.md for a change."""
    project = project_mod.discover_project(ctx.obj["root"])
    agent_id = agent_id or project.config.settings.default_agent
    agent = next((a for a in project.config.agents if a.id == agent_id), None)
    if agent_id and agent is None:
        _fail(f"Agent not found: {agent_id}")

    try:
        result = asyncio.run(changes_mod.plan_change(
            project.root, change_id, dry_run=dry_run,
            agent=agent, agent_service=AgentService() if agent else None,
        ))
    except changes_mod.ChangeError as e:
        _fail(str(e))

    if dry_run:
        click.echo(result.content)
        return
    source = "template" if result.used_fallback else f"agent {agent.id}"
    click.echo(f"Wrote {result.task_count} tasks to {result.tasks_path} (from {source})")


@main.command("seed")
@click.argument("change_id")
@click.option("--dry-run", is_flag=True, help="Show what would be created")
@click.option("--prefix", default=None, help="Id prefix for dry-run output")
@click.pass_context
def seed_command(ctx, change_id, dry_run, prefix):
    """Import a change's tasks into beads."""
    project = project_mod.discover_project(ctx.obj["root"])
    try:
        result = changes_mod.seed_change(
            project.root, change_id, project.has_beads, dry_run=dry_run, prefix=prefix
        )
    except changes_mod.ChangeError as e:
        _fail(str(e))

    if dry_run:
        for task in result.tasks:
            deps = f" [depends: {', '.join(task.deps)}]" if task.deps else ""
            click.echo(f"  {result.task_ids[task.id]}: {task.title}{deps}")
        return

    click.echo(f"Created {len(result.created)} tasks, {len(result.dependencies)} dependencies")
    for t_id, issue_id in result.task_ids.items():
        click.echo(f"  {t_id} -> {issue_id}")
    for error in result.errors:
        click.echo(f"  ! {error}", err=True)
    if not result.success:
        sys.exit(1)


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("update")
@click.argument("task_id")
@click.option("--status", type=click.Choice(TASK_STATUSES), default=None)
@click.option("--assignee", default=None)
@click.option("--priority", type=click.Choice(TASK_PRIORITIES), default=None)
@click.option("--title", default=None)
@click.pass_context
def task_update(ctx, task_id, status, assignee, priority, title):
    """Update a task through bd."""
    try:
        beads_mod.update_task(
            ctx.obj["root"], task_id,
            assignee=assignee, status=status, priority=priority, title=title,
        )
    except (ValueError, beads_mod.BeadsError) as e:
        _fail(str(e))
    click.echo(f"Updated task: {task_id}")


# ── Config Commands ───────────────────────────────────────────────────────────


@main.group("config")
def config_group():
    """Project configuration."""
    pass


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config")
@click.pass_context
def config_init(ctx, force):
    """Write a default .clawde/config.json."""
    try:
        path = project_mod.write_default_config(ctx.obj["root"], force=force)
    except FileExistsError as e:
        _fail(f"{e} (use --force to overwrite)")
    click.echo(f"Wrote {path}")


# ── Watch Command ─────────────────────────────────────────────────────────────


@main.command("watch")
@click.pass_context
def watch_command(ctx):
    """Print a summary line whenever the project state changes."""
    manager = _manager(ctx)

    def report(state: ProjectState):
        counts = ", ".join(f"{k}={v}" for k, v in sorted(serialize.summary(state)["tasks_by_status"].items()))
        click.echo(
            f"[update] tasks={len(state.tasks)} ({counts}) "
            f"changes={len(state.changes)} events={len(state.events)}"
        )

    async def run():
        state = await manager.ensure_state()
        click.echo(f"Watching {state.project.root} (Ctrl-C to stop)")
        report(state)
        manager.on_refresh(report)
        try:
            await asyncio.Event().wait()
        finally:
            manager.stop_watching()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("Stopped.")


# ── Dashboard Command ────────────────────────────────────────────────────────


@main.command("ui")
@click.option("--host", default=None, help="Host to bind to (default CLAWDE_HOST)")
@click.option("--port", default=None, type=int, help="Port to listen on (default CLAWDE_PORT)")
@click.option("--open/--no-open", default=True, help="Open browser automatically")
@click.pass_context
def ui_command(ctx, host, port, open):
    """Launch the web dashboard."""
    import os
    import webbrowser

    from clawde.web.app import run_server

    config = get_config()
    host = host or config.host
    port = port or config.port
    os.environ["CLAWDE_ROOT"] = ctx.obj["root"]

    url = f"http://{host}:{port}"
    click.echo(f"Starting dashboard at {url}")
    if open:
        webbrowser.open(url)
    run_server(host=host, port=port)


# ── MCP Server Command ───────────────────────────────────────────────────────


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
@click.pass_context
def mcp_serve(ctx):
    """Start the MCP server (stdio transport)."""
    import os

    os.environ["CLAWDE_ROOT"] = ctx.obj["root"]

    from clawde.mcp.server import mcp
    from clawde.mcp import prompts  # noqa: F401 - registers prompts

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
