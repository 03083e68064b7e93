"""Filesystem watcher that debounces changes per source category.

watchdog delivers raw events on its observer thread; they are handed to
the asyncio loop that called ``start()`` and debounced there with
``loop.call_later``. A burst of events within the debounce window for one
category results in a single callback.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

# (subdirectory relative to the project root, category)
WATCH_TARGETS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("openspec",), "openspec"),
    ((".beads",), "beads"),
    ((".git", "refs"), "git"),
    ((".clawde",), "config"),
)

ChangeCallback = Callable[[str], object]


class _CategoryHandler(FileSystemEventHandler):
    def __init__(self, watcher: "FileWatcher", category: str):
        self.watcher = watcher
        self.category = category

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed_no_write"):
            return
        self.watcher._notify_threadsafe(self.category)


class FileWatcher:
    def __init__(
        self,
        root: str | Path,
        debounce_ms: int = 100,
        on_change: ChangeCallback | None = None,
        on_any: ChangeCallback | None = None,
    ):
        self.root = Path(root)
        self.debounce = max(debounce_ms, 0) / 1000
        self.on_change = on_change
        self.on_any = on_any
        self._observer: Observer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._running = False
        self.watched: dict[str, Path] = {}

    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Schedule recursive watches on every target directory that exists."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._running = True

        observer = Observer()
        for parts, category in WATCH_TARGETS:
            directory = self.root.joinpath(*parts)
            if not directory.is_dir():
                logger.debug("Not watching %s: directory missing", directory)
                continue
            try:
                observer.schedule(_CategoryHandler(self, category), str(directory), recursive=True)
            except OSError as e:
                logger.warning("Could not watch %s: %s", directory, e)
                continue
            self.watched[category] = directory

        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s (%s)", self.root, ", ".join(self.watched) or "nothing")

    def stop(self, join_timeout: float = 1.0) -> None:
        """Release OS watch handles, join the observer thread and cancel pending work."""
        self._running = False
        if self._observer is not None:
            self._observer.unschedule_all()
            self._observer.stop()
            self._observer.join(timeout=join_timeout)
            if self._observer.is_alive():
                logger.warning("Observer thread for %s did not stop in time", self.root)
            self._observer = None
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self.watched = {}
        logger.info("Stopped watching %s", self.root)

    @property
    def pending(self) -> int:
        return len(self._timers)

    def _notify_threadsafe(self, category: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self.notify, category)
        except RuntimeError:
            # Loop closed between the check and the call
            pass

    def notify(self, category: str) -> None:
        """Record a raw change for a category. Must run on the event loop."""
        if not self._running or self._loop is None:
            return
        existing = self._timers.pop(category, None)
        if existing is not None:
            existing.cancel()
        self._timers[category] = self._loop.call_later(self.debounce, self._fire, category)

    def _fire(self, category: str) -> None:
        self._timers.pop(category, None)
        if not self._running:
            return
        for callback in (self.on_change, self.on_any):
            if callback is None:
                continue
            try:
                result = callback(category)
            except Exception:
                logger.exception("Watch callback failed for %s", category)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)


def create_project_watcher(
    root: str | Path,
    debounce_ms: int,
    on_refresh: ChangeCallback,
) -> FileWatcher:
    """Watcher that hands each debounced category to ``on_refresh``."""
    return FileWatcher(root, debounce_ms, on_change=on_refresh)
