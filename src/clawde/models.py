"""Data models for the ClawDE project state."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

TaskStatus = Literal["open", "ready", "in-progress", "in-review", "blocked", "done"]
TaskPriority = Literal["P0", "P1", "P2", "P3"]
ArtifactType = Literal["proposal", "specs", "design", "tasks"]
ChangeStatus = Literal["active", "implementing", "in-review", "verified", "archived"]
AgentStatus = Literal["idle", "working", "blocked", "waiting-review"]
ConnectionStatus = Literal["connected", "disconnected", "error"]
EventType = Literal[
    "task-created",
    "task-claimed",
    "task-started",
    "task-completed",
    "task-review-requested",
    "task-approved",
    "task-rejected",
    "task-blocked",
    "agent-connected",
    "agent-disconnected",
    "commit",
    "spec-updated",
    "change-created",
    "change-verified",
    "change-archived",
]

TASK_STATUSES: tuple[str, ...] = ("open", "ready", "in-progress", "in-review", "blocked", "done")
TASK_PRIORITIES: tuple[str, ...] = ("P0", "P1", "P2", "P3")
ARTIFACT_TYPES: tuple[str, ...] = ("proposal", "specs", "design", "tasks")
CHANGE_STATUSES: tuple[str, ...] = ("active", "implementing", "in-review", "verified", "archived")
AGENT_STATUSES: tuple[str, ...] = ("idle", "working", "blocked", "waiting-review")
CONNECTION_STATUSES: tuple[str, ...] = ("connected", "disconnected", "error")


# ── Configuration ─────────────────────────────────────────────────────────────


@dataclass
class AgentConnectionConfig:
    type: str = "openclaw"
    gateway: str = ""


@dataclass
class AgentConfig:
    id: str
    name: str
    provider: str = "unknown"
    model: str = "unknown"
    color: str = "#64748b"
    capabilities: list[str] = field(default_factory=list)
    connection: AgentConnectionConfig = field(default_factory=AgentConnectionConfig)


@dataclass
class Settings:
    confirm_destructive: bool = True
    max_actions_per_minute: int = 30
    watch_debounce_ms: int = 100
    mock_mode: bool = False
    default_agent: str | None = None


@dataclass
class ClawdeConfig:
    agents: list[AgentConfig] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)


@dataclass(frozen=True)
class ProjectContext:
    root: str
    name: str
    has_openspec: bool = False
    has_beads: bool = False
    has_git: bool = False
    has_clawde_config: bool = False
    config: ClawdeConfig = field(default_factory=ClawdeConfig)


# ── Entities ──────────────────────────────────────────────────────────────────


@dataclass
class Evidence:
    id: str
    task_id: str
    agent_id: str
    description: str = ""
    timestamp: datetime | None = None
    commit_sha: str | None = None
    pr_url: str | None = None
    test_output: str | None = None
    test_passed: bool | None = None


@dataclass
class Task:
    id: str
    title: str
    description: str = ""
    status: TaskStatus = "open"
    deps: list[str] = field(default_factory=list)
    priority: TaskPriority = "P2"
    assignee: str | None = None
    change_id: str | None = None
    labels: list[str] = field(default_factory=list)
    evidence: list[Evidence] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Artifact:
    id: str
    type: ArtifactType
    path: str
    title: str
    change_id: str
    content: str = ""
    last_updated: datetime | None = None
    stale: bool = False


@dataclass
class Change:
    id: str
    name: str
    description: str = ""
    status: ChangeStatus = "active"
    artifacts: list[Artifact] = field(default_factory=list)
    task_ids: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Agent:
    id: str
    name: str
    provider: str = "unknown"
    model: str = "unknown"
    capabilities: list[str] = field(default_factory=list)
    status: AgentStatus = "idle"
    connection_status: ConnectionStatus = "disconnected"
    current_task_id: str | None = None
    color: str = "#64748b"


@dataclass
class Event:
    id: str
    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""
    agent_id: str | None = None
    task_id: str | None = None
    change_id: str | None = None


# ── Version control ───────────────────────────────────────────────────────────


@dataclass
class CommitInfo:
    sha: str
    short_sha: str
    message: str
    author: str
    email: str = ""
    timestamp: str = ""
    files_changed: int = 0


@dataclass
class DiffLine:
    type: Literal["add", "remove", "context"]
    content: str


@dataclass
class DiffHunk:
    header: str
    lines: list[DiffLine] = field(default_factory=list)


@dataclass
class DiffFile:
    path: str
    additions: int = 0
    deletions: int = 0
    hunks: list[DiffHunk] = field(default_factory=list)


# ── Snapshot ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectState:
    """One joined, internally consistent view of the project.

    Published snapshots are never patched; a refresh builds a new one.
    """

    project: ProjectContext
    tasks: tuple[Task, ...] = ()
    changes: tuple[Change, ...] = ()
    events: tuple[Event, ...] = ()
    agents: tuple[Agent, ...] = ()


def get_ready_tasks(tasks) -> list[Task]:
    """Tasks that are open/ready and whose dependencies are all 'done'.

    Unknown dependency ids count as not done. Only direct dependencies are
    inspected, so cyclic graphs never recurse.
    """
    by_id = {t.id: t for t in tasks}
    ready = []
    for task in tasks:
        if task.status not in ("open", "ready"):
            continue
        if all(
            (dep := by_id.get(dep_id)) is not None and dep.status == "done"
            for dep_id in task.deps
        ):
            ready.append(task)
    return ready


def count_by_status(items) -> dict[str, int]:
    counts: dict[str, int] = {}
    for item in items:
        counts[item.status] = counts.get(item.status, 0) + 1
    return counts
