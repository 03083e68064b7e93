"""Tests for the web API."""

import json
import tempfile
from pathlib import Path

import httpx
import pytest
from starlette.testclient import TestClient

from clawde.core import agents as agents_mod
from clawde.core.agents import AgentService
from clawde.core.manager import reset_manager
from clawde.web.app import create_app

ISSUES = [
    {"id": "X-1", "title": "Schema", "status": "closed"},
    {"id": "X-2", "title": "API", "status": "in_progress", "assignee": "claude"},
    {"id": "X-3", "title": "Client", "status": "open"},
]

CONFIG = {
    "agents": [{
        "id": "claude",
        "name": "Claude",
        "connection": {"type": "openclaw", "gateway": "http://gateway.test"},
    }],
}


def _chat_handler(request: httpx.Request):
    body = "".join(
        "data: " + json.dumps({"choices": [{"delta": {"content": part}}]}) + "\n\n"
        for part in ("Hello", " world")
    )
    return httpx.Response(200, content=(body + "data: [DONE]\n\n").encode())


@pytest.fixture
def project():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        change = root / "openspec" / "changes" / "add-dark-mode"
        change.mkdir(parents=True)
        (change / "proposal.md").write_text("# Add Dark Mode\n\nDark theme.\n")
        (root / ".beads").mkdir()
        (root / ".clawde").mkdir()
        (root / ".clawde" / "config.json").write_text(json.dumps(CONFIG))
        yield root


@pytest.fixture
def client(project, fake_bd, monkeypatch):
    fake_bd.set_issues(ISSUES)
    fake_bd.set_deps("X-3", [{"depends_on_id": "X-2"}])
    monkeypatch.setenv("CLAWDE_ROOT", str(project))
    monkeypatch.delenv("CLAWDE_MOCK", raising=False)
    monkeypatch.setattr(
        agents_mod, "_agent_service", AgentService(transport=httpx.MockTransport(_chat_handler))
    )
    reset_manager()
    with TestClient(create_app()) as test_client:
        yield test_client
    reset_manager()


@pytest.fixture
def mock_client(monkeypatch):
    with tempfile.TemporaryDirectory() as tmp:
        monkeypatch.setenv("CLAWDE_ROOT", tmp)
        monkeypatch.setenv("CLAWDE_MOCK", "true")
        reset_manager()
        with TestClient(create_app()) as test_client:
            yield test_client
        reset_manager()


class TestDashboardPage:
    def test_index_returns_html(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "ClawDE" in resp.text
        assert "/api/events/stream" in resp.text


class TestProjectAPI:
    def test_project_summary(self, client, project):
        data = client.get("/api/project").json()
        assert data["project"]["root"] == str(project.resolve())
        assert data["project"]["has_beads"] is True
        assert data["counts"]["tasks"] == 3
        assert data["tasks_by_status"] == {"done": 1, "in-progress": 1, "open": 1}
        assert data["agents"][0]["id"] == "claude"

    def test_refresh(self, client):
        resp = client.post("/api/refresh", json={"category": "beads"})
        assert resp.status_code == 200
        assert resp.json()["counts"]["changes"] == 1

    def test_refresh_unknown_category(self, client):
        resp = client.post("/api/refresh", json={"category": "bogus"})
        assert resp.status_code == 400
        assert "error" in resp.json()


class TestTasksAPI:
    def test_list_and_filter(self, client):
        assert len(client.get("/api/tasks").json()["tasks"]) == 3
        open_tasks = client.get("/api/tasks", params={"status": "open"}).json()["tasks"]
        assert [t["id"] for t in open_tasks] == ["X-3"]
        assert open_tasks[0]["deps"] == ["X-2"]

    def test_invalid_status_filter(self, client):
        resp = client.get("/api/tasks", params={"status": "triaged"})
        assert resp.status_code == 400

    def test_ready_excludes_unfinished_deps(self, client):
        assert client.get("/api/tasks/ready").json()["tasks"] == []

    def test_get_task(self, client):
        data = client.get("/api/tasks/X-2").json()
        assert data["status"] == "in-progress"
        assert data["assignee"] == "claude"
        assert client.get("/api/tasks/nope").status_code == 404

    def test_update_task(self, client, fake_bd):
        resp = client.patch("/api/tasks/X-3", json={"status": "done", "assignee": "bob"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert "update X-3 --json --assignee bob --status closed" in fake_bd.calls()

    def test_update_requires_fields(self, client):
        resp = client.patch("/api/tasks/X-3", json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "No fields to update"

    def test_update_bad_json(self, client):
        resp = client.patch("/api/tasks/X-3", content=b"{oops", headers={"content-type": "application/json"})
        assert resp.status_code == 400

    @pytest.mark.parametrize("body", [
        {"status": []},
        {"assignee": 5},
        {"title": {"text": "x"}},
        {"priority": "P9"},
        {"priority": 1},
    ])
    def test_update_rejects_malformed_fields(self, client, fake_bd, body):
        resp = client.patch("/api/tasks/X-3", json=body)
        assert resp.status_code == 400
        assert not any(call.startswith("update") for call in fake_bd.calls())

    def test_update_unknown_task(self, client):
        resp = client.patch("/api/tasks/MISSING-1", json={"status": "done"})
        assert resp.status_code == 404


class TestChangesAPI:
    def test_list_and_get(self, client):
        [change] = client.get("/api/changes").json()["changes"]
        assert change["id"] == "add-dark-mode"
        assert change["status"] == "active"
        assert "content" not in change["artifacts"][0]

        detail = client.get("/api/changes/add-dark-mode").json()
        assert detail["artifacts"][0]["content"].startswith("# Add Dark Mode")
        assert client.get("/api/changes/nope").status_code == 404

    def test_create(self, client, project):
        resp = client.post("/api/changes", json={"name": "Search", "description": "Full text."})
        assert resp.status_code == 201
        assert resp.json()["change_id"] == "search"
        assert (project / "openspec" / "changes" / "search" / "proposal.md").exists()

        again = client.post("/api/changes", json={"name": "Search", "description": "Again."})
        assert again.status_code == 409

    def test_create_requires_fields(self, client):
        assert client.post("/api/changes", json={"name": "x"}).status_code == 400

    def test_plan_and_seed_dry_run(self, client, project):
        plan = client.post("/api/changes/add-dark-mode/plan", json={"dry_run": True}).json()
        assert plan["used_fallback"] is True
        assert plan["task_count"] == 4
        assert not (project / "openspec" / "changes" / "add-dark-mode" / "tasks.md").exists()

        client.post("/api/changes/add-dark-mode/plan", json={})
        seed = client.post(
            "/api/changes/add-dark-mode/seed", json={"dry_run": True, "prefix": "dm"}
        ).json()
        assert seed["success"] is True
        assert seed["task_ids"]["T1"] == "dm-T1"

    def test_plan_missing_change(self, client):
        assert client.post("/api/changes/nope/plan", json={}).status_code == 404

    def test_seed_without_tasks(self, client):
        resp = client.post("/api/changes/add-dark-mode/seed", json={})
        assert resp.status_code == 404
        assert "Run plan first" in resp.json()["error"]


class TestEventsAPI:
    def test_events_without_git(self, client):
        assert client.get("/api/events").json() == {"events": []}

    def test_negative_limit_is_rejected(self, client):
        resp = client.get("/api/events", params={"limit": "-1"})
        assert resp.status_code == 400

    def test_diff(self, client):
        assert client.get("/api/diff").json() == {"files": []}
        assert client.get("/api/diff", params={"ref": "--output=x"}).status_code == 400


class TestChatAPI:
    def test_streams_reply(self, client):
        resp = client.post(
            "/api/chat",
            json={"agent_id": "claude", "messages": [{"role": "user", "content": "hi"}]},
        )
        assert resp.status_code == 200
        assert resp.text == "Hello world"

    def test_unknown_agent(self, client):
        resp = client.post("/api/chat", json={"agent_id": "ghost", "messages": [{"role": "user"}]})
        assert resp.status_code == 404

    def test_requires_messages(self, client):
        assert client.post("/api/chat", json={"agent_id": "claude"}).status_code == 400

    def test_cancel(self, client):
        resp = client.post("/api/agents/claude/cancel")
        assert resp.json() == {"success": True, "agent_id": "claude"}
        agents = client.get("/api/project").json()["agents"]
        assert agents[0]["connection_status"] == "disconnected"


class TestMockMode:
    def test_serves_demo_state(self, mock_client):
        data = mock_client.get("/api/project").json()
        assert data["project"]["name"] == "ClawDE (mock)"
        assert len(mock_client.get("/api/tasks").json()["tasks"]) == 4

    def test_updates_disabled(self, mock_client):
        assert mock_client.patch("/api/tasks/dm-1", json={"status": "done"}).status_code == 400
