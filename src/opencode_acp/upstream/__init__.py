"""Client side of the opencode server: HTTP API, wire types and launcher."""

from opencode_acp.upstream.client import OpencodeClient
from opencode_acp.upstream.server import OpencodeServer, parse_listening_url
from opencode_acp.upstream.types import (
    Event,
    EventType,
    MessageError,
    MessageInfo,
    MessageWithParts,
    Part,
    PartType,
    ToolState,
    ToolStatus,
)

__all__ = [
    "OpencodeClient",
    "OpencodeServer",
    "parse_listening_url",
    "Event",
    "EventType",
    "MessageError",
    "MessageInfo",
    "MessageWithParts",
    "Part",
    "PartType",
    "ToolState",
    "ToolStatus",
]
