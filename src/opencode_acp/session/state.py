"""Per-session derived state owned by the bridge."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from opencode_acp.session.delta import DeltaTracker
from opencode_acp.session.permissions import PermissionMode
from opencode_acp.upstream.types import MessageInfo, ToolStatus


@dataclass
class ToolCallRecord:
    """What has been sent downstream for one tool call id."""

    call_id: str
    tool: str | None = None
    status: ToolStatus | None = None  # last status notified
    blocked: bool = False  # denied or blocked by plan mode

    def advance(self, status: ToolStatus) -> bool:
        """Record a transition to `status`.

        Returns False for repeats and for snapshots older than the
        recorded status; those must not produce a notification.
        """
        if self.blocked:
            return False
        if self.status is not None and status.rank <= self.status.rank:
            return False
        self.status = status
        return True


@dataclass
class SessionState:
    """One upstream session as seen by the bridge."""

    session_id: str
    cwd: str
    permission_mode: PermissionMode = PermissionMode.DEFAULT
    cancelled: bool = False
    model: tuple[str, str] | None = None  # (provider_id, model_id)
    deltas: DeltaTracker = field(default_factory=DeltaTracker)
    tool_calls: dict[str, ToolCallRecord] = field(default_factory=dict)

    # Finished assistant messages seen on the feed since the turn began
    _completed: dict[str, MessageInfo] = field(default_factory=dict, init=False, repr=False)
    _waiter: tuple[str, asyncio.Future[MessageInfo]] | None = field(default=None, init=False, repr=False)

    def tool_call(self, call_id: str, tool: str | None = None) -> ToolCallRecord:
        record = self.tool_calls.get(call_id)
        if record is None:
            record = ToolCallRecord(call_id=call_id, tool=tool)
            self.tool_calls[call_id] = record
        elif tool and not record.tool:
            record.tool = tool
        return record

    def begin_turn(self) -> None:
        """Reset per-turn state at the start of a prompt."""
        self.cancelled = False
        self._completed.clear()

    def is_completed(self, message_id: str) -> bool:
        return message_id in self._completed

    def mark_completed(self, info: MessageInfo) -> None:
        """Record that an assistant message finished, waking its waiter."""
        self._completed[info.id] = info
        if self._waiter is not None:
            message_id, future = self._waiter
            if message_id == info.id and not future.done():
                future.set_result(info)

    async def wait_for_completion(self, message_id: str, timeout: float | None = None) -> MessageInfo:
        """Wait until the feed delivered the completion of `message_id`.

        Only one waiter may be outstanding per session.
        """
        if self._waiter is not None and not self._waiter[1].done():
            raise RuntimeError(f"Session {self.session_id} already has a pending completion waiter")

        info = self._completed.get(message_id)
        if info is not None:
            return info

        future: asyncio.Future[MessageInfo] = asyncio.get_running_loop().create_future()
        self._waiter = (message_id, future)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._waiter = None

    @property
    def has_waiter(self) -> bool:
        return self._waiter is not None and not self._waiter[1].done()
