"""Configuration management for opencode-acp.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/opencode-acp/ or %PROGRAMDATA%)
- User-level config (~/.config/opencode-acp/ or %APPDATA%)
- Project-level config (<cwd>/.opencode-acp/)
- Environment variable overrides (highest priority)

Example usage:
    from opencode_acp.config import load_config

    config = load_config(session_root="/path/to/project")
    print(config.upstream.url)
"""

from opencode_acp.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from opencode_acp.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from opencode_acp.config.schema import (
    Config,
    LoggingConfig,
    SessionConfig,
    TerminalConfig,
    UpstreamConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    # Schema types
    "UpstreamConfig",
    "SessionConfig",
    "TerminalConfig",
    "LoggingConfig",
    # Path utilities
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
