"""Change operations: create, plan (tasks.md) and seed into beads.

These write to the filesystem or the task tool only. The file watcher
notices the result and refreshes the project state.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from clawde.core.agents import AgentService
from clawde.integrations import beads as beads_mod
from clawde.integrations.openspec import CHANGES_SUBPATH, extract_title
from clawde.models import AgentConfig

logger = logging.getLogger(__name__)


class ChangeError(Exception):
    """Base class for change operation failures."""


class InvalidChangeError(ChangeError):
    """Raised for names or ids that do not produce a usable directory."""


class ChangeExistsError(ChangeError):
    """Raised when creating a change whose directory already exists."""


class ChangeNotFoundError(ChangeError):
    """Raised when a change directory or one of its files is missing."""


@dataclass
class CreatedChange:
    change_id: str
    path: str


@dataclass
class PlanResult:
    change_id: str
    content: str
    task_count: int
    tasks_path: str | None = None
    dry_run: bool = False
    used_fallback: bool = False


@dataclass
class ParsedTask:
    id: str
    title: str
    description: str = ""
    deps: list[str] = field(default_factory=list)
    phase: str = "Phase 1"


@dataclass
class SeedResult:
    change_id: str
    tasks: list[ParsedTask] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    task_ids: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return not self.errors


def sanitize_change_id(raw: str) -> str:
    """Convert a name or id to a directory-safe change id, keeping its case."""
    slug = re.sub(r"[^A-Za-z0-9-]", "-", raw)
    slug = re.sub(r"-+", "-", slug).strip("-")
    if not slug:
        raise InvalidChangeError(f"Invalid change name: {raw!r}")
    return slug


def change_dir(root: str | Path, change_id: str) -> Path:
    """Resolved directory for a change, guaranteed to sit inside openspec/changes."""
    changes_root = Path(root, *CHANGES_SUBPATH).resolve()
    path = (changes_root / sanitize_change_id(change_id)).resolve()
    if path.parent != changes_root:
        raise InvalidChangeError(f"Invalid change ID: {change_id!r}")
    return path


# ── Create ────────────────────────────────────────────────────────────────────


def create_change(root: str | Path, name: str, description: str) -> CreatedChange:
    """Create openspec/changes/<id>/proposal.md."""
    if not name or not description:
        raise InvalidChangeError("Missing name or description")
    change_id = sanitize_change_id(name.lower())[:50].strip("-")
    path = change_dir(root, change_id)
    if path.exists():
        raise ChangeExistsError(f'Change "{path.name}" already exists')

    path.mkdir(parents=True)
    (path / "proposal.md").write_text(render_proposal(path.name, description), encoding="utf-8")
    logger.info("Created change %s", path.name)
    return CreatedChange(change_id=path.name, path=str(path))


def render_proposal(change_id: str, description: str) -> str:
    return f"""# {change_id}

**Status:** Active
**Created:** {date.today().isoformat()}

## Summary

{description}

## Motivation

_Why is this change needed? What problem does it solve?_

## Proposed Solution

_High-level description of what will be built._

## Tasks

_Run `clawde plan {change_id}` to generate tasks, or add them manually below._

## Open Questions

- _Any unknowns or decisions to be made?_
"""


# ── Plan ──────────────────────────────────────────────────────────────────────

_TASK_HEADER = re.compile(r"^###\s+(T\d+)[:\s]+(.+)$")
_PHASE_HEADER = re.compile(r"^##\s+Phase\s+\d+[:\s]+(.+)$")
_DEPS_LINE = re.compile(r"\*\*Deps:\*\*\s*(.+)", re.IGNORECASE)
_COUNT_TASKS = re.compile(r"^### T\d+:", re.MULTILINE)


def planning_prompt(change_id: str) -> str:
    return f"""You are a task decomposition assistant for ClawDE.

Read a feature proposal and output ONLY the tasks.md content, in this format:

# {change_id} - Tasks

## Phase 1: [Phase Name]

### T1: [Task Title]
- [Requirement]
- **Deps:** none

### T2: [Task Title]
- [Requirement]
- **Deps:** T1

Group related work into phases, keep each task to 1-4 hours, always include
a **Deps:** line (comma-separated task refs, or "none"), number tasks T1, T2, ..."""


async def plan_change(
    root: str | Path,
    change_id: str,
    dry_run: bool = False,
    agent: AgentConfig | None = None,
    agent_service: AgentService | None = None,
) -> PlanResult:
    """Generate tasks.md from a change's proposal.

    Asks the agent when one is given; falls back to a template otherwise or
    when the agent fails.
    """
    path = change_dir(root, change_id)
    change_id = path.name
    if not path.is_dir():
        raise ChangeNotFoundError(f'Change "{change_id}" not found')

    proposal_path = path / "proposal.md"
    try:
        proposal = proposal_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ChangeNotFoundError(f'No proposal.md found for change "{change_id}"') from None

    tasks_path = path / "tasks.md"
    existing = tasks_path.read_text(encoding="utf-8") if tasks_path.exists() else None

    content = None
    if agent is not None and agent_service is not None:
        content = await _ask_agent(agent, agent_service, change_id, proposal, existing)
    used_fallback = content is None
    if content is None:
        content = fallback_tasks(change_id, proposal)

    task_count = len(_COUNT_TASKS.findall(content))
    if dry_run:
        return PlanResult(change_id=change_id, content=content, task_count=task_count,
                          dry_run=True, used_fallback=used_fallback)

    await asyncio.to_thread(tasks_path.write_text, content, encoding="utf-8")
    logger.info("Wrote %d tasks for %s", task_count, change_id)
    return PlanResult(change_id=change_id, content=content, task_count=task_count,
                      tasks_path=str(tasks_path), used_fallback=used_fallback)


async def _ask_agent(
    agent: AgentConfig,
    agent_service: AgentService,
    change_id: str,
    proposal: str,
    existing: str | None,
) -> str | None:
    if existing:
        user = (
            "Here's a feature proposal. There are existing tasks that may need updates.\n\n"
            f"## Proposal\n{proposal}\n\n## Existing Tasks\n{existing}\n\n"
            "Please regenerate/refine the tasks based on the current proposal state."
        )
    else:
        user = f"Here's a feature proposal. Please generate a task breakdown.\n\n## Proposal\n{proposal}"

    messages = [
        {"role": "system", "content": planning_prompt(change_id)},
        {"role": "user", "content": user},
    ]
    reply = (await agent_service.send_message_full(agent, messages)).strip()
    if not reply or reply.startswith("[Error"):
        logger.warning("Agent planning failed for %s, using template: %s", change_id, reply[:200])
        return None
    return reply


def fallback_tasks(change_id: str, proposal: str) -> str:
    title = extract_title(proposal) or change_id
    section = re.search(r"##\s*Tasks?\s*\n([\s\S]*?)(?=\n##|$)", proposal, re.IGNORECASE)
    hints = section.group(1).strip() if section else ""
    if hints:
        hint_lines = "\n".join(f"  {line}" for line in hints.splitlines())
        core_hints = f"- Hints from proposal:\n{hint_lines}"
    else:
        core_hints = "- [Add specific requirements]"

    return f"""# {change_id} - Tasks

> Auto-generated template. Agent planning unavailable, please refine manually.

## Phase 1: Foundation

### T1: Initial setup
- Set up base structure
- Define interfaces/types
- **Deps:** none

### T2: Core implementation
- Implement main functionality from proposal
{core_hints}
- **Deps:** T1

## Phase 2: Integration

### T3: Wire up to UI/system
- Connect to existing components
- Add necessary API routes
- **Deps:** T2

## Phase 3: Polish

### T4: Testing and refinement
- Add tests
- Handle edge cases
- Documentation
- **Deps:** T3

---
_Original proposal: {title}_
"""


def parse_tasks_md(content: str) -> list[ParsedTask]:
    """Parse `### T<n>: Title` sections with their **Deps:** lines."""
    tasks: list[ParsedTask] = []
    phase = "Phase 1"
    current: ParsedTask | None = None
    desc: list[str] = []

    def flush():
        if current is not None:
            current.description = "\n".join(desc).strip()
            tasks.append(current)
        desc.clear()

    for line in content.splitlines():
        if m := _PHASE_HEADER.match(line):
            flush()
            current = None
            phase = m.group(1).strip()
            continue

        if m := _TASK_HEADER.match(line):
            flush()
            current = ParsedTask(id=m.group(1).upper(), title=m.group(2).strip(), phase=phase)
            continue

        if current is not None and "**Deps:**" in line:
            if m := _DEPS_LINE.search(line):
                value = m.group(1).strip()
                if value.lower() != "none":
                    current.deps = [
                        d.upper()
                        for d in re.split(r"[,\s]+", value)
                        if re.fullmatch(r"T\d+", d, re.IGNORECASE)
                    ]
            continue

        if current is not None and line.strip():
            desc.append(line)

    flush()
    return tasks


# ── Seed ──────────────────────────────────────────────────────────────────────


def seed_change(
    root: str | Path,
    change_id: str,
    has_beads: bool,
    dry_run: bool = False,
    prefix: str | None = None,
) -> SeedResult:
    """Import a change's tasks.md into beads.

    Completes with partial success: items that fail are reported in
    ``errors`` and the ones already created stay.
    """
    path = change_dir(root, change_id)
    change_id = path.name
    if not path.is_dir():
        raise ChangeNotFoundError(f'Change "{change_id}" not found')

    tasks_path = path / "tasks.md"
    try:
        content = tasks_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ChangeNotFoundError(
            f'No tasks.md found for change "{change_id}". Run plan first.'
        ) from None

    tasks = parse_tasks_md(content)
    if not tasks:
        raise InvalidChangeError("No tasks found in tasks.md")
    if not has_beads:
        raise ChangeError("Beads not initialized in this project. Run `bd init` first.")

    result = SeedResult(change_id=change_id, tasks=tasks, dry_run=dry_run)
    if dry_run:
        prefix = prefix or change_id[:10]
        result.task_ids = {t.id: f"{prefix}-{t.id}" for t in tasks}
        return result

    for task in tasks:
        try:
            issue_id = beads_mod.create_issue(
                root, task.title, task.description, labels=[f"change:{change_id}"]
            )
        except beads_mod.BeadsError as e:
            result.errors.append(f"Failed to create {task.id}: {e}")
            continue
        result.task_ids[task.id] = issue_id
        result.created.append(issue_id)

    for task in tasks:
        issue_id = result.task_ids.get(task.id)
        if not issue_id:
            continue
        for dep in task.deps:
            dep_id = result.task_ids.get(dep)
            if not dep_id:
                result.errors.append(f"Dep {dep} not found for {task.id}")
                continue
            try:
                beads_mod.add_dependency(root, issue_id, dep_id)
            except beads_mod.BeadsError as e:
                result.errors.append(f"Failed to add dep {task.id} -> {dep}: {e}")
                continue
            result.dependencies.append(f"{issue_id} -> {dep_id}")

    logger.info(
        "Seeded %s: %d tasks, %d deps, %d errors",
        change_id, len(result.created), len(result.dependencies), len(result.errors),
    )
    return result
