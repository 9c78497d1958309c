"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reset support
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from opencode_acp.config.merge import merge_configs
from opencode_acp.config.paths import get_config_paths
from opencode_acp.config.schema import (
    Config,
    LoggingConfig,
    SessionConfig,
    TerminalConfig,
    UpstreamConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("opencode_acp.config")

_cached_config: Config | None = None

_KNOWN_SECTIONS = {"upstream", "session", "terminal", "logging"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a config dict from environment variables (highest priority)."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("OPENCODE_ACP_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    url = os.environ.get("OPENCODE_ACP_URL")
    if url:
        overrides.setdefault("upstream", {})["url"] = url

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, dict) else {}


def _optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    upstream_data = _section(data, "upstream")
    defaults = UpstreamConfig()
    command = upstream_data.get("command", defaults.command)
    if isinstance(command, str):
        command = command.split()
    upstream = UpstreamConfig(
        url=upstream_data.get("url"),
        hostname=upstream_data.get("hostname", defaults.hostname),
        port=int(upstream_data.get("port", defaults.port)),
        command=[str(c) for c in command],
        startup_timeout=float(upstream_data.get("startup_timeout", defaults.startup_timeout)),
        request_timeout=_optional_float(upstream_data.get("request_timeout")),
        reconnect_delay=float(upstream_data.get("reconnect_delay", defaults.reconnect_delay)),
    )

    session_data = _section(data, "session")
    session = SessionConfig(
        default_mode=session_data.get("default_mode", "default"),
        agent=session_data.get("agent", "build"),
    )

    terminal_data = _section(data, "terminal")
    terminal = TerminalConfig(
        timeout=_optional_float(terminal_data.get("timeout")),
    )

    log_data = _section(data, "logging")
    verbose = log_data.get("verbose")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=int(verbose) if verbose is not None else None,
        file=log_data.get("file"),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        upstream=upstream,
        session=session,
        terminal=terminal,
        logging=logging_config,
        extra=extra,
    )


def load_config(session_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config (<session_root>/.opencode-acp/config.yaml)
    3. User config
    4. System config

    Args:
        session_root: Project directory for project-level config.
        reload: Force reload even if cached.
    """
    global _cached_config

    if _cached_config is not None and not reload and session_root is None:
        return _cached_config

    configs: list[dict[str, Any]] = []

    for path in get_config_paths(session_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    # Cache only global config (no session_root)
    if session_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config. Useful for testing."""
    global _cached_config
    _cached_config = None
