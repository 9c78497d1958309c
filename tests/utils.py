"""Shared test utilities for opencode-acp tests."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, Mock

from opencode_acp.upstream.types import Event, MessageInfo, MessageWithParts, Part

SESSION_ID = "ses_test"
MESSAGE_ID = "msg_test"


def make_part(part_type: str = "text", *, part_id: str = "p1", session_id: str = SESSION_ID, **fields: Any) -> Part:
    """Build a Part from wire-format fields (camelCase aliases allowed)."""
    data: dict[str, Any] = {
        "id": part_id,
        "type": part_type,
        "sessionID": session_id,
        "messageID": fields.pop("message_id", MESSAGE_ID),
    }
    data.update(fields)
    return Part.model_validate(data)


def text_part(text: str, *, part_id: str = "p1", session_id: str = SESSION_ID, timed: bool = True) -> Part:
    """A text part; untimed text parts are user echoes."""
    fields: dict[str, Any] = {"text": text}
    if timed:
        fields["time"] = {"start": 1700000000000}
    return make_part("text", part_id=part_id, session_id=session_id, **fields)


def tool_part(
    status: str,
    *,
    call_id: str = "call_1",
    tool: str = "read_file",
    session_id: str = SESSION_ID,
    part_id: str | None = None,
    **state: Any,
) -> Part:
    state_data: dict[str, Any] = {"status": status, "input": state.pop("input", {})}
    state_data.update(state)
    return make_part(
        "tool",
        part_id=part_id or f"prt_{call_id}",
        session_id=session_id,
        callID=call_id,
        tool=tool,
        state=state_data,
    )


def assistant_info(
    message_id: str = MESSAGE_ID,
    *,
    session_id: str = SESSION_ID,
    completed: bool = True,
    error: dict[str, Any] | None = None,
    role: str = "assistant",
) -> dict[str, Any]:
    time: dict[str, Any] = {"created": 1700000000000}
    if completed:
        time["completed"] = 1700000001000
    info: dict[str, Any] = {"id": message_id, "sessionID": session_id, "role": role, "time": time}
    if error is not None:
        info["error"] = error
    return info


def message_with_parts(info: dict[str, Any], parts: list[Part] | None = None) -> MessageWithParts:
    return MessageWithParts(
        info=MessageInfo.model_validate(info),
        parts=parts or [],
    )


def part_event(part: Part) -> Event:
    return Event(
        type="message.part.updated",
        properties={"part": part.model_dump(mode="json", by_alias=True, exclude_none=True)},
    )


def message_event(info: dict[str, Any]) -> Event:
    return Event(type="message.updated", properties={"info": info})


def permission_response(option_id: str | None = "allow_once", outcome: str = "selected") -> Mock:
    """A request_permission response with the given outcome."""
    response = Mock()
    response.outcome = Mock()
    response.outcome.outcome = outcome
    response.outcome.option_id = option_id
    return response


def create_mock_conn() -> Mock:
    """A mock ACP client connection."""
    conn = Mock()
    conn.session_update = AsyncMock()
    conn.request_permission = AsyncMock(return_value=permission_response("allow_once"))
    return conn


async def _idle_feed():
    # An event feed that stays open and never delivers anything
    await asyncio.Event().wait()
    yield  # pragma: no cover


def create_mock_upstream() -> Mock:
    """A mock OpencodeClient with every call as an AsyncMock."""
    upstream = Mock()
    for name in (
        "create_session",
        "prompt",
        "abort",
        "shell",
        "list_messages",
        "get_config",
        "list_providers",
        "command",
        "summarize",
        "init_session",
        "revert",
        "unrevert",
        "share",
        "unshare",
        "aclose",
    ):
        setattr(upstream, name, AsyncMock())
    upstream.subscribe = Mock(side_effect=lambda: _idle_feed())
    upstream.list_messages.return_value = []
    upstream.get_config.return_value = {}
    upstream.list_providers.return_value = {"providers": [], "default": {}}
    return upstream


def sent_updates(conn: Mock) -> list[Any]:
    """Updates passed to conn.session_update, in order."""
    return [call.args[1] for call in conn.session_update.await_args_list]


def update_kinds(conn: Mock) -> list[str]:
    return [update.session_update for update in sent_updates(conn)]


def chunk_texts(conn: Mock, kind: str = "agent_message_chunk") -> list[str]:
    return [u.content.text for u in sent_updates(conn) if u.session_update == kind]


async def wait_for_async(coro, timeout: float = 1.0):
    """Wait for an async coroutine with a timeout."""
    return await asyncio.wait_for(coro, timeout=timeout)
