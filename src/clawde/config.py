"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    project_root: Path = field(default_factory=lambda: Path.cwd())
    mock_mode: bool = False
    host: str = "127.0.0.1"
    port: int = 8787
    heartbeat_seconds: float = 30.0
    git_log_limit: int = 50
    command_timeout: float = 10.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if root := os.environ.get("CLAWDE_ROOT"):
            config.project_root = Path(root)

        config.mock_mode = os.environ.get("CLAWDE_MOCK", "").lower() == "true"

        if host := os.environ.get("CLAWDE_HOST"):
            config.host = host

        if port := os.environ.get("CLAWDE_PORT"):
            config.port = int(port)

        if heartbeat := os.environ.get("CLAWDE_HEARTBEAT_SECONDS"):
            config.heartbeat_seconds = float(heartbeat)

        if limit := os.environ.get("CLAWDE_GIT_LOG_LIMIT"):
            config.git_log_limit = int(limit)

        if timeout := os.environ.get("CLAWDE_COMMAND_TIMEOUT"):
            config.command_timeout = float(timeout)

        if level := os.environ.get("CLAWDE_LOG_LEVEL"):
            config.log_level = level.upper()

        return config


def get_config() -> Config:
    return Config.from_env()
