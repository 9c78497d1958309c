"""Tool-call permission arbitration against a session's permission mode.

Runs when a tool call is first seen in the pending state. Depending on the
mode it lets the call through, blocks it outright, or asks the ACP client.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from acp.schema import PermissionOption, ToolCallUpdate

from opencode_acp.logging import get_logger
from opencode_acp.transport.acp.mapper import infer_tool_kind, tool_call_failed, tool_call_start
from opencode_acp.upstream.types import Part, ToolStatus

if TYPE_CHECKING:
    from acp.interfaces import Client

    from opencode_acp.session.state import SessionState

log = get_logger("permissions")

PLAN_MODE_BLOCKED = "Tool execution blocked in Plan Mode."

PERMISSION_OPTIONS = [
    PermissionOption(option_id="allow_once", name="Allow Once", kind="allow_once"),
    PermissionOption(option_id="reject_once", name="Deny", kind="reject_once"),
]


class PermissionMode(Enum):
    """Per-session tool permission policy."""

    DEFAULT = "default"
    ACCEPT_EDITS = "acceptEdits"
    BYPASS_PERMISSIONS = "bypassPermissions"
    PLAN = "plan"

    @classmethod
    def parse(cls, mode_id: str) -> PermissionMode:
        """Look up a mode by its ACP id; raises ValueError if unknown."""
        return cls(mode_id)


def denied_message(tool: str | None) -> str:
    return f"Permission for tool '{tool}' denied."


class ToolPermissionArbiter:
    """Decides, per pending tool call, whether it may proceed.

    Every decision sends its own notifications: the pending `tool_call`
    when the call is let through or asked about, a failed
    `tool_call_update` when it is blocked. Blocked calls are marked on the
    session so later snapshots of them are dropped.
    """

    def __init__(self, conn: Client) -> None:
        self._conn = conn

    async def _send(self, session_id: str, update: Any) -> None:
        await self._conn.session_update(session_id, update)

    async def on_pending(self, session: SessionState, part: Part) -> bool:
        """Arbitrate a pending tool part. Returns True if the call may proceed."""
        call_id = part.call_id or part.id
        record = session.tool_call(call_id, part.tool)
        if record.blocked or record.status is not None:
            # Already arbitrated; never ask twice for one call
            return not record.blocked

        mode = session.permission_mode
        session_id = session.session_id

        if mode == PermissionMode.PLAN:
            record.blocked = True
            log.info("Blocked tool %s (%s) in plan mode", part.tool, call_id)
            await self._send(session_id, tool_call_failed(call_id, PLAN_MODE_BLOCKED))
            return False

        record.advance(ToolStatus.PENDING)
        await self._send(session_id, tool_call_start(part))

        if mode in (PermissionMode.BYPASS_PERMISSIONS, PermissionMode.ACCEPT_EDITS):
            return True

        if await self._request_permission(session_id, part, call_id):
            log.info("Permission granted for tool %s (%s)", part.tool, call_id)
            return True

        record.blocked = True
        log.info("Permission denied for tool %s (%s)", part.tool, call_id)
        await self._send(session_id, tool_call_failed(call_id, denied_message(part.tool)))
        return False

    async def _request_permission(self, session_id: str, part: Part, call_id: str) -> bool:
        tool_call = ToolCallUpdate(
            tool_call_id=call_id,
            title=f"Allow agent to run tool: {part.tool}?",
            kind=infer_tool_kind(part.tool).value,
            status="pending",
        )
        try:
            response = await self._conn.request_permission(
                options=PERMISSION_OPTIONS,
                session_id=session_id,
                tool_call=tool_call,
            )
        except Exception as e:
            log.error("Permission request failed: %s", e)
            return False

        outcome = response.outcome
        return outcome.outcome == "selected" and getattr(outcome, "option_id", None) == "allow_once"
