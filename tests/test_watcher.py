"""Tests for the debounced filesystem watcher."""

import asyncio
import tempfile
from pathlib import Path

import pytest

from clawde.core.watcher import FileWatcher, create_project_watcher


@pytest.fixture
def root():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp)
        (path / ".beads").mkdir()
        (path / "openspec").mkdir()
        yield path


@pytest.fixture
async def started(root):
    calls = []
    watcher = FileWatcher(root, debounce_ms=100, on_change=calls.append)
    watcher.start()
    yield watcher, calls
    watcher.stop()


class TestDebounce:
    async def test_burst_collapses_to_one_call(self, started):
        watcher, calls = started
        watcher.notify("beads")
        await asyncio.sleep(0.02)
        watcher.notify("beads")
        assert calls == []
        await asyncio.sleep(0.25)
        assert calls == ["beads"]

    async def test_categories_debounce_independently(self, started):
        watcher, calls = started
        watcher.notify("beads")
        watcher.notify("openspec")
        assert watcher.pending == 2
        await asyncio.sleep(0.25)
        assert sorted(calls) == ["beads", "openspec"]
        assert watcher.pending == 0

    async def test_stop_cancels_pending_timers(self, started):
        watcher, calls = started
        watcher.notify("beads")
        watcher.stop()
        assert watcher.pending == 0
        await asyncio.sleep(0.2)
        assert calls == []
        watcher.notify("beads")
        assert watcher.pending == 0

    async def test_stop_joins_observer_thread(self, started):
        watcher, _ = started
        observer = watcher._observer
        watcher.stop()
        assert not observer.is_alive()

    async def test_stop_cancels_running_callbacks(self, root):
        started_event = asyncio.Event()

        async def slow(category):
            started_event.set()
            await asyncio.sleep(10)

        watcher = FileWatcher(root, debounce_ms=0, on_change=slow)
        watcher.start()
        watcher.notify("beads")
        await asyncio.wait_for(started_event.wait(), timeout=1)
        [task] = list(watcher._tasks)
        watcher.stop()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()


class TestCallbacks:
    async def test_async_callback_and_on_any(self, root):
        changed, anything = [], []

        async def on_change(category):
            changed.append(category)

        watcher = FileWatcher(root, debounce_ms=10, on_change=on_change, on_any=anything.append)
        watcher.start()
        try:
            watcher.notify("config")
            await asyncio.sleep(0.1)
        finally:
            watcher.stop()
        assert changed == ["config"]
        assert anything == ["config"]

    async def test_failing_callback_does_not_block_others(self, root):
        anything = []

        def broken(category):
            raise RuntimeError("boom")

        watcher = FileWatcher(root, debounce_ms=10, on_change=broken, on_any=anything.append)
        watcher.start()
        try:
            watcher.notify("beads")
            await asyncio.sleep(0.1)
        finally:
            watcher.stop()
        assert anything == ["beads"]

    async def test_project_watcher_wires_category_callback(self, root):
        calls = []
        watcher = create_project_watcher(root, 100, calls.append)
        assert watcher.on_change is not None
        assert watcher.on_any is None
        assert watcher.debounce == pytest.approx(0.1)


class TestLifecycle:
    async def test_only_existing_directories_are_watched(self, started):
        watcher, _ = started
        assert set(watcher.watched) == {"beads", "openspec"}
        assert watcher.is_running()

    async def test_start_is_idempotent(self, started):
        watcher, _ = started
        observer = watcher._observer
        watcher.start()
        assert watcher._observer is observer

    async def test_real_file_events_are_debounced(self, started, root):
        watcher, calls = started
        (root / ".beads" / "a.jsonl").write_text("one\n")
        (root / ".beads" / "b.jsonl").write_text("two\n")
        for _ in range(100):
            if calls:
                break
            await asyncio.sleep(0.05)
        await asyncio.sleep(0.3)
        assert calls == ["beads"]
