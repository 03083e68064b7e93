"""Tests for the server-sent event stream."""

import asyncio
import json

import pytest

from clawde.core.manager import AdapterManager
from clawde.web.stream import state_events


@pytest.fixture
def mock_manager(tmp_path):
    return AdapterManager(tmp_path, mock_mode=True)


@pytest.fixture
def live_manager(tmp_path):
    root = tmp_path / "live"
    change = root / "openspec" / "changes" / "one"
    change.mkdir(parents=True)
    (change / "proposal.md").write_text("# One\n")
    return AdapterManager(root)


def _data(event: dict) -> dict:
    return json.loads(event["data"])


def _heartbeats_running() -> bool:
    return any(
        t.get_name() == "sse-heartbeat" and not t.done() for t in asyncio.all_tasks()
    )


class TestStateEvents:
    async def test_init_event_first(self, mock_manager):
        events = state_events(mock_manager, heartbeat_interval=60)
        try:
            first = await asyncio.wait_for(events.__anext__(), 2)
            assert first["event"] == "init"
            data = _data(first)
            assert data["tasks"] == 4
            assert data["project"] == "ClawDE (mock)"
            assert mock_manager.listener_count == 1
        finally:
            await events.aclose()

    async def test_heartbeat(self, mock_manager):
        events = state_events(mock_manager, heartbeat_interval=0.05)
        try:
            await events.__anext__()
            beat = await asyncio.wait_for(events.__anext__(), 2)
            assert beat["event"] == "heartbeat"
            assert "ts" in _data(beat)
        finally:
            await events.aclose()

    async def test_update_after_refresh(self, live_manager):
        await live_manager.ensure_state(watch=False)
        events = state_events(live_manager, heartbeat_interval=60)
        try:
            await events.__anext__()
            await live_manager.refresh("openspec")
            update = await asyncio.wait_for(events.__anext__(), 2)
            assert update["event"] == "update"
            data = _data(update)
            assert data["changes"] == 1
            assert data["changes_by_status"] == {"active": 1}
            assert isinstance(data["timestamp"], int)
        finally:
            await events.aclose()

    async def test_disconnect_releases_subscription(self, mock_manager):
        before = mock_manager.listener_count
        events = state_events(mock_manager, heartbeat_interval=0.05)
        await events.__anext__()
        assert mock_manager.listener_count == before + 1
        assert _heartbeats_running()

        await events.aclose()
        await asyncio.sleep(0.01)
        assert mock_manager.listener_count == before
        assert not _heartbeats_running()

    async def test_init_failure_is_an_error_event(self, live_manager, monkeypatch):
        async def fail():
            raise RuntimeError("cannot read project")

        monkeypatch.setattr(live_manager, "init", fail)
        events = state_events(live_manager)
        first = await events.__anext__()
        assert first["event"] == "error"
        assert "cannot read project" in _data(first)["error"]
        with pytest.raises(StopAsyncIteration):
            await events.__anext__()
        assert live_manager.listener_count == 0
