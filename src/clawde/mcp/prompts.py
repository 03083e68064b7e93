"""MCP prompt templates for common workflows."""

from clawde.mcp.server import mcp


@mcp.prompt()
def plan_feature(name: str, description: str) -> str:
    """Generate a prompt that takes a feature from idea to seeded tasks."""
    return (
        f"I want to build the following feature, called '{name}':\n\n"
        f"{description}\n\n"
        f"Please:\n"
        f"1. Use create_change to open a change proposal for it\n"
        f"2. Use plan_change with dry_run=true and review the generated tasks\n"
        f"3. Check that each task has a clear **Deps:** line and is small enough for one sitting\n"
        f"4. Run plan_change again without dry_run once the breakdown looks right\n"
        f"5. Use seed_change to import the tasks into beads, and report any errors"
    )


@mcp.prompt()
def status_report() -> str:
    """Generate a prompt for a project status report."""
    return (
        "Please generate a status report for this project.\n\n"
        "Use project_status, list_tasks, get_ready_tasks and recent_commits, then provide:\n"
        "1. Overall progress summary\n"
        "2. Tasks currently in progress or in review, and who holds them\n"
        "3. Blocked tasks and the dependencies holding them up\n"
        "4. Which ready tasks to pick up next\n"
        "5. Changes whose tasks are stale relative to their proposal"
    )


@mcp.prompt()
def review_change(change_id: str) -> str:
    """Generate a prompt to review the state of one change."""
    return (
        f"Please review change '{change_id}'.\n\n"
        f"Use get_change to read its proposal, design and tasks, and list_tasks to see the\n"
        f"beads issues labelled for it. Then provide:\n"
        f"1. Whether the task breakdown covers the proposal\n"
        f"2. Whether tasks.md is stale and needs re-planning\n"
        f"3. Progress on the change's tasks\n"
        f"4. Whether the change looks ready to verify"
    )
