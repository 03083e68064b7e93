"""Beads (`bd`) CLI wrappers and the task-graph adapter."""

import asyncio
import json
import logging
import re
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any

from clawde.models import TASK_PRIORITIES, Task, TaskPriority, TaskStatus, get_ready_tasks

logger = logging.getLogger(__name__)

_TASK_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

# External status vocabulary -> Task status. Anything else maps to "open".
STATUS_MAP: dict[str, TaskStatus] = {
    "closed": "done",
    "done": "done",
    "resolved": "done",
    "in_progress": "in-progress",
    "in-progress": "in-progress",
    "active": "in-progress",
    "working": "in-progress",
    "in_review": "in-review",
    "in-review": "in-review",
    "review": "in-review",
    "blocked": "blocked",
    "ready": "ready",
    "open": "open",
}

# Task status -> the status bd understands
BEADS_STATUS_MAP: dict[str, str] = {
    "open": "open",
    "ready": "open",
    "in-progress": "in_progress",
    "in-review": "in_progress",
    "blocked": "blocked",
    "done": "closed",
}


class BeadsError(Exception):
    """Raised when a bd command fails or returns unusable output."""


class BeadsNotFoundError(BeadsError):
    """Raised when bd reports that an issue does not exist."""


def run_bd(
    args: list[str],
    cwd: str | Path | None = None,
    timeout: float = 10.0,
    parse_json: bool = True,
) -> Any:
    """Run a bd command. Returns decoded JSON (or raw stdout). Raises BeadsError."""
    cmd = ["bd"] + args
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        if "not found" in stderr.lower() or "no such issue" in stderr.lower():
            raise BeadsNotFoundError(stderr) from e
        raise BeadsError(f"bd {' '.join(args)} failed: {stderr}") from e
    except subprocess.TimeoutExpired as e:
        raise BeadsError(f"bd {' '.join(args)} timed out after {timeout}s") from e
    except FileNotFoundError as e:
        raise BeadsError("bd is not installed") from e

    output = result.stdout.strip()
    if not parse_json:
        return output
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise BeadsError(f"bd {' '.join(args)} returned invalid JSON") from e


def validate_task_id(task_id: str) -> bool:
    return bool(task_id) and bool(_TASK_ID.match(task_id))


def map_bead_status(status: Any) -> TaskStatus:
    if not isinstance(status, str):
        return "open"
    return STATUS_MAP.get(status.strip().lower(), "open")


def map_to_beads_status(status: str) -> str:
    """Translate a Task status for `bd update --status`."""
    try:
        return BEADS_STATUS_MAP[status]
    except KeyError:
        raise ValueError(f"Invalid status: {status}") from None


def map_bead_priority(priority: Any) -> TaskPriority:
    if isinstance(priority, bool):
        return "P2"
    if isinstance(priority, int):
        return f"P{priority}" if 0 <= priority <= 3 else "P2"
    if isinstance(priority, str):
        p = priority.strip().upper()
        if p in ("P0", "P1", "P2", "P3"):
            return p
        if p in ("0", "1", "2", "3"):
            return f"P{p}"
    return "P2"


def issue_to_task(issue: dict, deps: list[str] | None = None) -> Task:
    """Map one `bd list --json` record onto a Task."""
    labels = [str(label) for label in issue.get("labels") or []]
    change_id = issue.get("change_id")
    if not change_id:
        change_id = next(
            (label.split(":", 1)[1] for label in labels if label.startswith("change:")), None
        )
    now = datetime.now().astimezone()
    return Task(
        id=str(issue["id"]),
        title=str(issue.get("title") or ""),
        description=str(issue.get("description") or ""),
        status=map_bead_status(issue.get("status")),
        deps=list(deps or []),
        priority=map_bead_priority(issue.get("priority")),
        assignee=issue.get("assignee") or None,
        change_id=change_id,
        labels=labels,
        created_at=_parse_dt(issue.get("created_at") or issue.get("created")) or now,
        updated_at=_parse_dt(issue.get("updated_at") or issue.get("updated")) or now,
    )


def parse_dep_edges(raw: Any, issue_id: str) -> list[tuple[str, str]]:
    """Edges (dependent, dependency) from `bd dep list <id> --json` output."""
    if not isinstance(raw, list):
        return []
    edges = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        if entry.get("from") and entry.get("to"):
            edges.append((str(entry["from"]), str(entry["to"])))
        elif entry.get("depends_on_id"):
            edges.append((str(entry.get("issue_id") or issue_id), str(entry["depends_on_id"])))
        elif entry.get("id"):
            edges.append((issue_id, str(entry["id"])))
    return edges


class BeadsAdapter:
    """Caches the task graph read from bd. Getters never shell out."""

    def __init__(self, timeout: float = 10.0):
        self.root: str | None = None
        self.timeout = timeout
        self._tasks: list[Task] = []
        self._edges: list[tuple[str, str]] = []

    async def init(self, root: str | Path) -> None:
        self.root = str(root)
        await self.refresh()

    async def refresh(self) -> None:
        if self.root is None:
            self._tasks, self._edges = [], []
            return
        try:
            tasks, edges = await asyncio.to_thread(self._read)
        except BeadsError as e:
            logger.info("Beads unavailable, clearing tasks: %s", e)
            tasks, edges = [], []
        self._tasks, self._edges = tasks, edges

    def _read(self) -> tuple[list[Task], list[tuple[str, str]]]:
        issues = run_bd(["list", "--json", "--all"], cwd=self.root, timeout=self.timeout)
        if not isinstance(issues, list):
            raise BeadsError("bd list returned an unexpected shape")
        issues = [i for i in issues if isinstance(i, dict) and i.get("id")]

        edges: list[tuple[str, str]] = []
        for issue in issues:
            issue_id = str(issue["id"])
            try:
                raw = run_bd(["dep", "list", issue_id, "--json"], cwd=self.root, timeout=self.timeout)
            except BeadsError as e:
                logger.debug("No dependency edges for %s: %s", issue_id, e)
                continue
            edges.extend(parse_dep_edges(raw, issue_id))

        deps: dict[str, list[str]] = {}
        for src, dst in edges:
            if src == dst:
                continue
            bucket = deps.setdefault(src, [])
            if dst not in bucket:
                bucket.append(dst)

        tasks = [issue_to_task(i, deps.get(str(i["id"]))) for i in issues]
        return tasks, edges

    def get_tasks(self) -> list[Task]:
        return list(self._tasks)

    def get_task(self, task_id: str) -> Task | None:
        return next((t for t in self._tasks if t.id == task_id), None)

    def get_ready_tasks(self) -> list[Task]:
        return get_ready_tasks(self._tasks)

    def get_dependency_graph(self) -> dict:
        return {
            "nodes": list(self._tasks),
            "edges": [{"from": src, "to": dst} for src, dst in self._edges],
        }


# ── Mutations ─────────────────────────────────────────────────────────────────


def update_task(
    root: str | Path,
    task_id: str,
    assignee: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    title: str | None = None,
    timeout: float = 15.0,
) -> dict:
    """Update task fields through `bd update`. Raises ValueError or BeadsError."""
    if not validate_task_id(task_id):
        raise ValueError(f"Invalid task ID format: {task_id!r}")
    fields = {"assignee": assignee, "status": status, "priority": priority, "title": title}
    for name, value in fields.items():
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{name} must be a string")
    if priority is not None and priority not in TASK_PRIORITIES:
        raise ValueError(f"Invalid priority: {priority}")

    args = ["update", task_id, "--json"]
    if assignee is not None:
        args += ["--assignee", assignee]
    if status is not None:
        args += ["--status", map_to_beads_status(status)]
    if priority is not None:
        args += ["--priority", priority]
    if title is not None:
        args += ["--title", title]
    if len(args) == 3:
        raise ValueError("No fields to update")

    output = run_bd(args, cwd=root, timeout=timeout, parse_json=False)
    try:
        return json.loads(output)
    except json.JSONDecodeError:
        # bd may print plain text on success
        return {"success": True, "output": output}


def close_task(root: str | Path, task_id: str, timeout: float = 15.0) -> str:
    if not validate_task_id(task_id):
        raise ValueError(f"Invalid task ID format: {task_id!r}")
    return run_bd(["close", task_id], cwd=root, timeout=timeout, parse_json=False)


def show_task(root: str | Path, task_id: str, timeout: float = 10.0) -> Any:
    if not validate_task_id(task_id):
        raise ValueError(f"Invalid task ID format: {task_id!r}")
    return run_bd(["show", task_id, "--json"], cwd=root, timeout=timeout)


def create_issue(
    root: str | Path,
    title: str,
    description: str = "",
    labels: list[str] | None = None,
    timeout: float = 15.0,
) -> str:
    """Create an issue and return its id."""
    args = ["create", title, "--json"]
    if description:
        args += ["--description", description]
    if labels:
        args += ["--labels", ",".join(labels)]
    result = run_bd(args, cwd=root, timeout=timeout)
    issue_id = None
    if isinstance(result, dict):
        issue_id = result.get("id") or (result.get("issue") or {}).get("id")
    if not issue_id:
        raise BeadsError(f"bd create did not return an issue id for {title!r}")
    return str(issue_id)


def add_dependency(root: str | Path, task_id: str, depends_on: str, timeout: float = 15.0) -> str:
    """Record that task_id depends on depends_on."""
    return run_bd(["dep", "add", task_id, depends_on], cwd=root, timeout=timeout, parse_json=False)


def _parse_dt(val: Any) -> datetime | None:
    if not isinstance(val, str) or not val:
        return None
    try:
        return datetime.fromisoformat(val)
    except ValueError:
        return None
