"""Session layer: per-session state, delta tracking and permission arbitration."""

from opencode_acp.session.delta import DeltaTracker
from opencode_acp.session.permissions import PermissionMode, ToolPermissionArbiter
from opencode_acp.session.registry import SessionRegistry
from opencode_acp.session.state import SessionState, ToolCallRecord

__all__ = [
    "DeltaTracker",
    "PermissionMode",
    "SessionRegistry",
    "SessionState",
    "ToolCallRecord",
    "ToolPermissionArbiter",
]
