"""Adapter manager: the process-wide owner of project state.

Runs discovery, owns the three source adapters, publishes immutable
ProjectState snapshots and notifies subscribers after every refresh.
"""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from clawde.config import get_config
from clawde.core.agents import AgentService, get_agent_service
from clawde.core.mock import load_mock_state
from clawde.core.project import discover_project
from clawde.core.watcher import FileWatcher, create_project_watcher
from clawde.integrations.beads import BeadsAdapter
from clawde.integrations.git import GitAdapter
from clawde.integrations.openspec import OpenSpecAdapter
from clawde.models import Agent, AgentConfig, ProjectContext, ProjectState

logger = logging.getLogger(__name__)

REFRESH_CATEGORIES = ("openspec", "beads", "git", "config", "any")

RefreshListener = Callable[[ProjectState], None]


def build_author_map(project: ProjectContext) -> dict[str, str]:
    """Git author name (exact and lower-cased) -> agent id."""
    author_map: dict[str, str] = {}
    for agent in project.config.agents:
        author_map[agent.name] = agent.id
        author_map.setdefault(agent.name.casefold(), agent.id)
    return author_map


class AdapterManager:
    def __init__(
        self,
        root: str | Path,
        mock_mode: bool = False,
        agent_service: AgentService | None = None,
        git_log_limit: int = 50,
        command_timeout: float = 10.0,
    ):
        self.root = str(Path(root).resolve())
        self.mock_mode = mock_mode
        self.agent_service = agent_service
        self.openspec = OpenSpecAdapter()
        self.beads = BeadsAdapter(timeout=command_timeout)
        self.git = GitAdapter(log_limit=git_log_limit, timeout=command_timeout)
        self._watcher: FileWatcher | None = None
        self._listeners: list[RefreshListener] = []
        self._state: ProjectState | None = None
        self._init_lock = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def init(self) -> ProjectState:
        """Discover the project, initialize present sources, publish a snapshot.

        Always re-runs discovery. Errors propagate to the caller.
        """
        if self.mock_mode:
            self._state = load_mock_state(self.root)
            return self._state

        project = await asyncio.to_thread(discover_project, self.root)
        if project.has_openspec:
            await self.openspec.init(self.root)
        if project.has_beads:
            await self.beads.init(self.root)
        if project.has_git:
            await self.git.init(self.root)

        state = await self.build_state(project)
        self._state = state
        logger.info(
            "Initialized %s: %d tasks, %d changes, %d events",
            project.name, len(state.tasks), len(state.changes), len(state.events),
        )
        return state

    async def ensure_state(self, watch: bool = True) -> ProjectState:
        """Return the current snapshot, initializing once on first access."""
        state = self._state
        if state is None:
            async with self._init_lock:
                if self._state is None:
                    await self.init()
                state = self._state
        if watch:
            await self.start_watching()
        return state

    async def start_watching(self) -> None:
        if self.mock_mode or self.is_watching():
            return
        project = await asyncio.to_thread(discover_project, self.root)
        if self.is_watching():
            return
        watcher = create_project_watcher(
            self.root, project.config.settings.watch_debounce_ms, self.refresh
        )
        self._watcher = watcher
        watcher.start()

    def stop_watching(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def is_watching(self) -> bool:
        return self._watcher is not None and self._watcher.is_running()

    # ── Subscriptions ─────────────────────────────────────────────────────────

    def get_state(self) -> ProjectState | None:
        return self._state

    def on_refresh(self, listener: RefreshListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ── Refresh ───────────────────────────────────────────────────────────────

    async def refresh(self, category: str = "any") -> ProjectState | None:
        """Re-read the sources behind ``category`` and publish a new snapshot.

        On any failure the previous snapshot stays current and None is
        returned. Refreshes are serialized; the last one to finish wins.
        """
        if category not in REFRESH_CATEGORIES:
            raise ValueError(f"Unknown refresh category: {category}")
        if self.mock_mode:
            return self._state

        async with self._refresh_lock:
            try:
                if category in ("openspec", "any"):
                    await self.openspec.refresh()
                if category in ("beads", "any"):
                    await self.beads.refresh()
                # git reads on demand

                project = await asyncio.to_thread(discover_project, self.root)
                await self._init_new_sources(project)
                state = await self.build_state(project)
            except Exception:
                logger.exception("Refresh (%s) failed, keeping previous state", category)
                return None

            self._state = state
            self._notify(state)
            return state

    async def _init_new_sources(self, project: ProjectContext) -> None:
        if project.has_openspec and self.openspec.root is None:
            await self.openspec.init(self.root)
        if project.has_beads and self.beads.root is None:
            await self.beads.init(self.root)
        if project.has_git and self.git.root is None:
            await self.git.init(self.root)

    def _notify(self, state: ProjectState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Refresh listener %r failed", listener)

    async def build_state(self, project: ProjectContext) -> ProjectState:
        tasks = self.beads.get_tasks() if project.has_beads else []
        changes = self.openspec.get_changes() if project.has_openspec else []
        events = (
            await self.git.get_commit_events(build_author_map(project)) if project.has_git else []
        )
        agents = [self._build_agent(a) for a in project.config.agents]
        return ProjectState(
            project=project,
            tasks=tuple(tasks),
            changes=tuple(changes),
            events=tuple(events),
            agents=tuple(agents),
        )

    def _build_agent(self, config: AgentConfig) -> Agent:
        connection = None
        if self.agent_service is not None:
            connection = self.agent_service.connection_status(config.id)
        return Agent(
            id=config.id,
            name=config.name,
            provider=config.provider,
            model=config.model,
            capabilities=list(config.capabilities),
            status="idle",
            connection_status=connection or "disconnected",
            color=config.color,
        )


_manager: AdapterManager | None = None


def get_manager(root: str | Path | None = None) -> AdapterManager:
    """The process-wide AdapterManager, created on first use."""
    global _manager
    if _manager is None:
        config = get_config()
        _manager = AdapterManager(
            root or config.project_root,
            mock_mode=config.mock_mode,
            agent_service=get_agent_service(),
            git_log_limit=config.git_log_limit,
            command_timeout=config.command_timeout,
        )
    return _manager


def reset_manager() -> None:
    """Stop watching and drop the singleton."""
    global _manager
    if _manager is not None:
        _manager.stop_watching()
    _manager = None
