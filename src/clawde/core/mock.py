"""Built-in demo state served when CLAWDE_MOCK=true."""

from datetime import datetime, timedelta, timezone

from clawde.models import (
    Agent,
    Artifact,
    Change,
    ClawdeConfig,
    Event,
    ProjectContext,
    ProjectState,
    Settings,
    Task,
)


def load_mock_state(root: str) -> ProjectState:
    now = datetime.now(timezone.utc)
    earlier = now - timedelta(hours=3)

    project = ProjectContext(
        root=root,
        name="ClawDE (mock)",
        has_openspec=True,
        has_beads=True,
        has_git=True,
        has_clawde_config=True,
        config=ClawdeConfig(settings=Settings(mock_mode=True)),
    )

    agents = (
        Agent(id="claude", name="Claude", provider="Anthropic", model="claude-opus-4-5",
              capabilities=["coding", "review"], status="working",
              connection_status="connected", current_task_id="dm-2", color="#f97316"),
        Agent(id="codex", name="Codex", provider="OpenAI", model="gpt-5-codex",
              capabilities=["coding"], color="#10b981"),
    )

    tasks = (
        Task(id="dm-1", title="Define theme tokens", status="done", priority="P1",
             assignee="claude", change_id="add-dark-mode", created_at=earlier, updated_at=now),
        Task(id="dm-2", title="Theme provider", status="in-progress", deps=["dm-1"],
             priority="P1", assignee="claude", change_id="add-dark-mode",
             created_at=earlier, updated_at=now),
        Task(id="dm-3", title="Settings toggle", status="open", deps=["dm-2"],
             change_id="add-dark-mode", created_at=earlier, updated_at=earlier),
        Task(id="dm-4", title="Visual regression tests", status="ready", deps=["dm-1"],
             priority="P3", created_at=earlier, updated_at=earlier),
    )

    proposal = Artifact(
        id="add-dark-mode-proposal", type="proposal",
        path=f"{root}/openspec/changes/add-dark-mode/proposal.md",
        title="Add Dark Mode", change_id="add-dark-mode",
        content="# Add Dark Mode\n\nLet users switch to a dark theme.\n", last_updated=earlier,
    )
    plan = Artifact(
        id="add-dark-mode-tasks", type="tasks",
        path=f"{root}/openspec/changes/add-dark-mode/tasks.md",
        title="add-dark-mode - Tasks", change_id="add-dark-mode",
        content="### T1: Define theme tokens\n### T2: Theme provider\n### T3: Settings toggle\n",
        last_updated=now,
    )
    changes = (
        Change(id="add-dark-mode", name="Add Dark Mode",
               description="Let users switch to a dark theme.", status="implementing",
               artifacts=[proposal, plan], task_ids=["T1", "T2", "T3"],
               created_at=earlier, updated_at=now),
    )

    events = (
        Event(id="git-a1b2c3d", type="commit", timestamp=now.isoformat(), agent_id="claude",
              payload={"sha": "a1b2c3d", "message": "Add theme tokens", "author": "Claude",
                       "files_changed": 3}),
        Event(id="mock-1", type="task-started", timestamp=now.isoformat(), agent_id="claude",
              task_id="dm-2", payload={}),
    )

    return ProjectState(project=project, tasks=tasks, changes=changes, events=events, agents=agents)
