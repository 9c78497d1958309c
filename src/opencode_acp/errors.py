"""Exception types raised across the bridge."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class OpencodeAcpError(Exception):
    """Base class for bridge errors."""


@dataclass
class SessionNotFoundError(OpencodeAcpError):
    """Raised when a session id is not registered with the bridge."""

    session_id: str

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class UpstreamError(OpencodeAcpError):
    """Raised when a call to the opencode server fails."""

    def __init__(
        self,
        status_code: int,
        message: str,
        payload: Any | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload
        self.path = path


class ModelResolutionError(OpencodeAcpError):
    """Raised when no provider/model can be resolved for a command."""


@dataclass
class TerminalNotFoundError(OpencodeAcpError):
    """Raised when a terminal id is unknown or was released."""

    terminal_id: str

    def __str__(self) -> str:
        return f"Terminal not found: {self.terminal_id}"
