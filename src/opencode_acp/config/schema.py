"""Configuration schema dataclasses for opencode-acp.

Defines the structure of configuration at all levels (system, user, project).
All fields are optional or defaulted so partial configs merge together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class UpstreamConfig:
    """How to reach the opencode server.

    Example config.yaml:
        upstream:
          url: http://127.0.0.1:4096   # connect instead of spawning
          command: ["opencode", "serve"]
          startup_timeout: 10
    """

    url: str | None = None  # Existing server; None spawns one
    hostname: str = "127.0.0.1"
    port: int = 0  # 0 lets the server pick
    command: list[str] = field(default_factory=lambda: ["opencode", "serve"])
    startup_timeout: float = 10.0  # Seconds to wait for "listening on"
    request_timeout: float | None = None  # Prompts can run for minutes
    reconnect_delay: float = 1.0  # Backoff after the event feed drops


@dataclass
class SessionConfig:
    """Session defaults configuration."""

    default_mode: str = "default"
    agent: str = "build"  # opencode agent used for shell commands


@dataclass
class TerminalConfig:
    """Background terminal configuration."""

    timeout: float | None = None  # Default timeout for terminal/create


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object.

    Aggregates all configuration sections. All fields use default factories
    so partial configs work with deep merging.
    """

    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Extension point for future config sections
    extra: dict[str, Any] = field(default_factory=dict)
