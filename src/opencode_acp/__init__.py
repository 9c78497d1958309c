"""opencode-acp: an Agent Client Protocol bridge for the opencode server."""

__version__ = "0.1.0"

from opencode_acp.config import Config, get_config, load_config
from opencode_acp.errors import (
    ModelResolutionError,
    OpencodeAcpError,
    SessionNotFoundError,
    TerminalNotFoundError,
    UpstreamError,
)
from opencode_acp.session import (
    DeltaTracker,
    PermissionMode,
    SessionRegistry,
    SessionState,
    ToolPermissionArbiter,
)
from opencode_acp.terminal import BackgroundTerminal, TerminalStatus, TerminalTracker
from opencode_acp.upstream import OpencodeClient

__all__ = [
    # Config
    "Config",
    "load_config",
    "get_config",
    # Errors
    "OpencodeAcpError",
    "SessionNotFoundError",
    "UpstreamError",
    "ModelResolutionError",
    "TerminalNotFoundError",
    # Session
    "DeltaTracker",
    "PermissionMode",
    "SessionRegistry",
    "SessionState",
    "ToolPermissionArbiter",
    # Terminal
    "BackgroundTerminal",
    "TerminalStatus",
    "TerminalTracker",
    # Upstream
    "OpencodeClient",
]
