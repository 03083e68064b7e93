"""Tests for project discovery and config parsing."""

import json
import tempfile
from pathlib import Path

import pytest

from clawde.core import project as project_mod
from clawde.core.manager import AdapterManager


@pytest.fixture
def root():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


def _write_config(root: Path, config: dict | str) -> None:
    (root / ".clawde").mkdir(exist_ok=True)
    text = config if isinstance(config, str) else json.dumps(config)
    (root / ".clawde" / "config.json").write_text(text)


class TestDiscovery:
    def test_bare_directory_has_no_sources(self, root):
        ctx = project_mod.discover_project(root)
        assert ctx.has_git is False
        assert ctx.has_openspec is False
        assert ctx.has_beads is False
        assert ctx.has_clawde_config is False
        assert ctx.name == root.resolve().name
        assert ctx.config.agents == []

    def test_flags_follow_marker_paths(self, root):
        (root / ".git").mkdir()
        (root / "openspec").mkdir()
        (root / ".beads").mkdir()
        ctx = project_mod.discover_project(root)
        assert (ctx.has_git, ctx.has_openspec, ctx.has_beads) == (True, True, True)

        (root / "openspec").rmdir()
        ctx = project_mod.discover_project(root)
        assert ctx.has_openspec is False
        assert ctx.has_git is True

    def test_name_from_package_json(self, root):
        (root / "package.json").write_text(json.dumps({"name": "web-app"}))
        assert project_mod.discover_project(root).name == "web-app"

    def test_name_from_pyproject(self, root):
        (root / "pyproject.toml").write_text('[project]\nname = "py-app"\n')
        assert project_mod.discover_project(root).name == "py-app"

    def test_broken_package_json_falls_back(self, root):
        (root / "package.json").write_text("{nope")
        assert project_mod.discover_project(root).name == root.resolve().name


class TestConfig:
    def test_parses_agents_and_camel_case_settings(self, root):
        _write_config(root, {
            "agents": [{
                "id": "claude",
                "name": "Claude",
                "provider": "Anthropic",
                "capabilities": ["coding"],
                "connection": {"type": "openclaw", "gateway": "http://localhost:18789"},
            }],
            "settings": {"watchDebounceMs": 250, "defaultAgent": "claude"},
        })
        ctx = project_mod.discover_project(root)
        assert ctx.has_clawde_config is True
        agent = ctx.config.agents[0]
        assert agent.id == "claude"
        assert agent.capabilities == ["coding"]
        assert agent.connection.gateway == "http://localhost:18789"
        assert ctx.config.settings.watch_debounce_ms == 250
        assert ctx.config.settings.default_agent == "claude"

    def test_malformed_config_uses_defaults(self, root):
        _write_config(root, "{not json")
        ctx = project_mod.discover_project(root)
        assert ctx.has_clawde_config is True
        assert ctx.config.agents == []
        assert ctx.config.settings.watch_debounce_ms == 100

    def test_wrongly_typed_settings_are_ignored(self):
        config = project_mod.parse_config(json.dumps({
            "settings": {"watchDebounceMs": "fast", "confirmDestructive": "yes", "unknown": 1},
        }))
        assert config.settings.watch_debounce_ms == 100
        assert config.settings.confirm_destructive is True

    def test_non_object_config(self):
        assert project_mod.parse_config("[1, 2]").agents == []

    @pytest.mark.parametrize("agents", [5, True, "claude", {"id": "claude"}])
    def test_non_list_agents_are_ignored(self, root, agents):
        _write_config(root, {"agents": agents})
        ctx = project_mod.discover_project(root)
        assert ctx.config.agents == []

    @pytest.mark.parametrize("number", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_numbers_are_ignored(self, number):
        config = project_mod.parse_config('{"settings": {"watchDebounceMs": %s}}' % number)
        assert config.settings.watch_debounce_ms == 100

    def test_only_known_settings_are_set(self):
        config = project_mod.parse_config(json.dumps({
            "settings": {"__class__": "x", "__dict__": {}, "defaultAgent": ["claude"]},
        }))
        assert type(config.settings) is project_mod.Settings
        assert config.settings.default_agent is None

    def test_write_default_config(self, root):
        path = project_mod.write_default_config(root)
        config = project_mod.parse_config(path.read_text())
        assert [a.id for a in config.agents] == ["claude"]
        assert config.settings.default_agent == "claude"

        with pytest.raises(FileExistsError):
            project_mod.write_default_config(root)
        project_mod.write_default_config(root, force=True)


class TestEmptyProjectState:
    async def test_build_state_is_empty(self, root):
        state = await AdapterManager(root).init()
        assert state.tasks == ()
        assert state.changes == ()
        assert state.events == ()
        assert state.agents == ()
