"""Wire types for the opencode server.

Parts arrive as full snapshots, never as diffs. Every model keeps unknown
fields so newer servers don't break parsing.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class UpstreamModel(BaseModel):
    """Base model with populate_by_name and unknown fields kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class PartType(str, Enum):
    """Known message part types."""

    TEXT = "text"
    REASONING = "reasoning"
    TOOL = "tool"
    FILE = "file"
    PATCH = "patch"
    SNAPSHOT = "snapshot"
    AGENT = "agent"
    STEP_START = "step-start"
    STEP_FINISH = "step-finish"


class ToolStatus(str, Enum):
    """Tool-call lifecycle states, in lifecycle order."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def rank(self) -> int:
        """Position in the lifecycle; completed and error share the last slot."""
        return _TOOL_STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ToolStatus.COMPLETED, ToolStatus.ERROR)


_TOOL_STATUS_RANK = {
    ToolStatus.PENDING: 0,
    ToolStatus.RUNNING: 1,
    ToolStatus.COMPLETED: 2,
    ToolStatus.ERROR: 2,
}


class PartTime(UpstreamModel):
    start: float | None = None
    end: float | None = None


class ToolState(UpstreamModel):
    status: ToolStatus
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    title: str | None = None
    error: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Part(UpstreamModel):
    """One part of a message.

    Only the fields used for translation are typed; the type tag stays a
    plain string so unrecognized part types still parse.
    """

    id: str
    type: str
    session_id: str | None = Field(default=None, alias="sessionID")
    message_id: str | None = Field(default=None, alias="messageID")

    # text / reasoning
    text: str | None = None
    time: PartTime | None = None
    synthetic: bool | None = None

    # tool
    call_id: str | None = Field(default=None, alias="callID")
    tool: str | None = None
    state: ToolState | None = None

    # file
    mime: str | None = None
    url: str | None = None
    filename: str | None = None

    # patch
    hash: str | None = None
    files: list[str] = Field(default_factory=list)


class MessageError(UpstreamModel):
    """Message-level error, e.g. {"name": "MessageAbortedError", "data": {...}}."""

    name: str = "UnknownError"
    message: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_abort(self) -> bool:
        return self.name == "MessageAbortedError"

    @property
    def detail(self) -> str | None:
        value = self.data.get("message") if isinstance(self.data, dict) else None
        return value if isinstance(value, str) and value else self.message


class MessageTime(UpstreamModel):
    created: float | None = None
    completed: float | None = None


class MessageInfo(UpstreamModel):
    id: str
    session_id: str | None = Field(default=None, alias="sessionID")
    role: str = "assistant"
    time: MessageTime | None = None
    error: MessageError | None = None
    provider_id: str | None = Field(default=None, alias="providerID")
    model_id: str | None = Field(default=None, alias="modelID")

    @property
    def is_assistant(self) -> bool:
        return self.role == "assistant"

    @property
    def is_finished(self) -> bool:
        """True once the assistant message completed or failed."""
        if self.error is not None:
            return True
        return self.time is not None and self.time.completed is not None


class MessageWithParts(UpstreamModel):
    info: MessageInfo
    parts: list[Part] = Field(default_factory=list)


class EventType(str, Enum):
    """Event types the bridge acts on; everything else is ignored."""

    PART_UPDATED = "message.part.updated"
    MESSAGE_UPDATED = "message.updated"
    SERVER_CONNECTED = "server.connected"


class Event(UpstreamModel):
    type: str
    properties: dict[str, Any] = Field(default_factory=dict)
