"""Project discovery and per-project configuration."""

import dataclasses
import json
import logging
import math
import tomllib
from pathlib import Path

from clawde.models import (
    AgentConfig,
    AgentConnectionConfig,
    ClawdeConfig,
    ProjectContext,
    Settings,
)

logger = logging.getLogger(__name__)

CONFIG_DIR = ".clawde"
CONFIG_FILE = "config.json"

# Settings keys as written in config.json (camelCase) -> Settings field
_SETTINGS_KEYS = {
    "confirmDestructive": "confirm_destructive",
    "maxActionsPerMinute": "max_actions_per_minute",
    "watchDebounceMs": "watch_debounce_ms",
    "mockMode": "mock_mode",
    "defaultAgent": "default_agent",
}

_SETTINGS_FIELDS = {f.name for f in dataclasses.fields(Settings)}


def discover_project(root: str | Path) -> ProjectContext:
    """Inspect a project root for .git/, openspec/, .beads/ and .clawde/.

    Each check is independent; a check that errors reports the source as
    absent. Config problems fall back to defaults.
    """
    root_path = Path(root).resolve()

    has_git = _exists(root_path / ".git")
    has_openspec = _exists(root_path / "openspec")
    has_beads = _exists(root_path / ".beads")
    has_clawde_config = _exists(root_path / CONFIG_DIR)

    config = ClawdeConfig()
    if has_clawde_config:
        config_path = root_path / CONFIG_DIR / CONFIG_FILE
        if _exists(config_path):
            try:
                config = parse_config(config_path.read_text(encoding="utf-8"))
            except OSError as e:
                logger.warning("Could not read %s: %s", config_path, e)

    return ProjectContext(
        root=str(root_path),
        name=_project_name(root_path),
        has_openspec=has_openspec,
        has_beads=has_beads,
        has_git=has_git,
        has_clawde_config=has_clawde_config,
        config=config,
    )


def parse_config(raw: str) -> ClawdeConfig:
    """Parse .clawde/config.json content. Malformed input yields defaults."""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Invalid ClawDE config, using defaults: %s", e)
        return ClawdeConfig()
    if not isinstance(parsed, dict):
        logger.warning("ClawDE config is not a JSON object, using defaults")
        return ClawdeConfig()

    agents_raw = parsed.get("agents")
    if not isinstance(agents_raw, list):
        agents_raw = []
    agents = [_parse_agent(a) for a in agents_raw if isinstance(a, dict)]
    return ClawdeConfig(agents=agents, settings=_parse_settings(parsed.get("settings")))


def _parse_agent(raw: dict) -> AgentConfig:
    connection = raw.get("connection") if isinstance(raw.get("connection"), dict) else {}
    capabilities = raw.get("capabilities")
    return AgentConfig(
        id=str(raw.get("id") or "unknown"),
        name=str(raw.get("name") or raw.get("id") or "Unknown"),
        provider=str(raw.get("provider") or "unknown"),
        model=str(raw.get("model") or "unknown"),
        color=str(raw.get("color") or "#64748b"),
        capabilities=[str(c) for c in capabilities] if isinstance(capabilities, list) else [],
        connection=AgentConnectionConfig(
            type=str(connection.get("type") or "openclaw"),
            gateway=str(connection.get("gateway") or ""),
        ),
    )


def _parse_settings(raw) -> Settings:
    settings = Settings()
    if not isinstance(raw, dict):
        return settings
    for key, value in raw.items():
        attr = _SETTINGS_KEYS.get(key, key)
        if attr not in _SETTINGS_FIELDS:
            continue
        default = getattr(Settings, attr, None)
        if isinstance(default, bool) and not isinstance(value, bool):
            continue
        if isinstance(default, int) and not isinstance(default, bool):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if isinstance(value, float) and not math.isfinite(value):
                continue
            value = int(value)
        if default is None and not isinstance(value, str):
            continue
        setattr(settings, attr, value)
    return settings


def generate_default_config() -> str:
    """Default .clawde/config.json for a new project."""
    config = {
        "agents": [
            {
                "id": "claude",
                "name": "Claude",
                "provider": "Anthropic",
                "model": "claude-opus-4-5",
                "color": "#f97316",
                "capabilities": ["coding", "architecture", "review", "documentation", "git-write"],
                "connection": {"type": "openclaw", "gateway": "http://localhost:18789"},
            }
        ],
        "settings": {
            "confirmDestructive": True,
            "maxActionsPerMinute": 30,
            "watchDebounceMs": 100,
            "defaultAgent": "claude",
        },
    }
    return json.dumps(config, indent=2) + "\n"


def write_default_config(root: str | Path, force: bool = False) -> Path:
    """Write the default config, refusing to overwrite unless forced."""
    path = Path(root) / CONFIG_DIR / CONFIG_FILE
    if path.exists() and not force:
        raise FileExistsError(f"{path} already exists")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_default_config(), encoding="utf-8")
    return path


def _project_name(root: Path) -> str:
    package_json = root / "package.json"
    if _exists(package_json):
        try:
            name = json.loads(package_json.read_text(encoding="utf-8")).get("name")
            if isinstance(name, str) and name:
                return name
        except (OSError, ValueError, AttributeError):
            pass

    pyproject = root / "pyproject.toml"
    if _exists(pyproject):
        try:
            with pyproject.open("rb") as f:
                name = tomllib.load(f).get("project", {}).get("name")
            if isinstance(name, str) and name:
                return name
        except (OSError, tomllib.TOMLDecodeError, AttributeError):
            pass

    return root.name or "unknown"


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError:
        return False
