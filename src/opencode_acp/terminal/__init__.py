"""Background terminals backed by the opencode session shell."""

from opencode_acp.terminal.tracker import (
    BackgroundTerminal,
    TerminalExitStatus,
    TerminalStatus,
    TerminalTracker,
)

__all__ = [
    "BackgroundTerminal",
    "TerminalExitStatus",
    "TerminalStatus",
    "TerminalTracker",
]
