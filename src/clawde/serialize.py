"""JSON-ready dicts for the state entities, shared by the web API and MCP tools."""

from datetime import datetime

from clawde.models import (
    Agent,
    Artifact,
    Change,
    CommitInfo,
    DiffFile,
    Event,
    ProjectContext,
    ProjectState,
    Task,
    count_by_status,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def task_to_dict(t: Task) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "status": t.status,
        "deps": list(t.deps),
        "priority": t.priority,
        "assignee": t.assignee,
        "change_id": t.change_id,
        "labels": list(t.labels),
        "evidence": [
            {
                "id": e.id,
                "agent_id": e.agent_id,
                "description": e.description,
                "timestamp": _iso(e.timestamp),
                "commit_sha": e.commit_sha,
                "pr_url": e.pr_url,
                "test_passed": e.test_passed,
            }
            for e in t.evidence
        ],
        "created_at": _iso(t.created_at),
        "updated_at": _iso(t.updated_at),
    }


def artifact_to_dict(a: Artifact, include_content: bool = False) -> dict:
    d = {
        "id": a.id,
        "type": a.type,
        "path": a.path,
        "title": a.title,
        "change_id": a.change_id,
        "last_updated": _iso(a.last_updated),
        "stale": a.stale,
    }
    if include_content:
        d["content"] = a.content
    return d


def change_to_dict(c: Change, include_content: bool = False) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "description": c.description,
        "status": c.status,
        "artifacts": [artifact_to_dict(a, include_content) for a in c.artifacts],
        "task_ids": list(c.task_ids),
        "created_at": _iso(c.created_at),
        "updated_at": _iso(c.updated_at),
    }


def event_to_dict(e: Event) -> dict:
    return {
        "id": e.id,
        "type": e.type,
        "payload": dict(e.payload),
        "timestamp": e.timestamp,
        "agent_id": e.agent_id,
        "task_id": e.task_id,
        "change_id": e.change_id,
    }


def agent_to_dict(a: Agent) -> dict:
    return {
        "id": a.id,
        "name": a.name,
        "provider": a.provider,
        "model": a.model,
        "capabilities": list(a.capabilities),
        "status": a.status,
        "connection_status": a.connection_status,
        "current_task_id": a.current_task_id,
        "color": a.color,
    }


def project_to_dict(p: ProjectContext) -> dict:
    return {
        "root": p.root,
        "name": p.name,
        "has_openspec": p.has_openspec,
        "has_beads": p.has_beads,
        "has_git": p.has_git,
        "has_clawde_config": p.has_clawde_config,
    }


def commit_to_dict(c: CommitInfo) -> dict:
    return {
        "sha": c.sha,
        "short_sha": c.short_sha,
        "message": c.message,
        "author": c.author,
        "email": c.email,
        "timestamp": c.timestamp,
    }


def diff_to_dict(f: DiffFile) -> dict:
    return {
        "path": f.path,
        "additions": f.additions,
        "deletions": f.deletions,
        "hunks": [
            {
                "header": h.header,
                "lines": [{"type": line.type, "content": line.content} for line in h.lines],
            }
            for h in f.hunks
        ],
    }


def summary(state: ProjectState) -> dict:
    """Project overview with counts, used by the status endpoints."""
    return {
        "project": project_to_dict(state.project),
        "counts": {
            "tasks": len(state.tasks),
            "changes": len(state.changes),
            "events": len(state.events),
            "agents": len(state.agents),
        },
        "tasks_by_status": count_by_status(state.tasks),
        "changes_by_status": count_by_status(state.changes),
        "agents": [agent_to_dict(a) for a in state.agents],
    }
