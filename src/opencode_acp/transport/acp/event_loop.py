"""The single consumer of the opencode event feed.

One task reads `/event` and demultiplexes events into a queue per session.
Each queue has its own worker, so events of one session are handled in
arrival order while a permission round trip in one session never holds up
another.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from opencode_acp.logging import TRACE, get_logger
from opencode_acp.transport.acp.mapper import map_message_error, map_part, map_tool_part, tool_call_snapshot
from opencode_acp.upstream.types import Event, EventType, MessageInfo, Part, PartType, ToolStatus

if TYPE_CHECKING:
    from acp.interfaces import Client

    from opencode_acp.session.permissions import ToolPermissionArbiter
    from opencode_acp.session.registry import SessionRegistry
    from opencode_acp.session.state import SessionState
    from opencode_acp.upstream.client import OpencodeClient

log = get_logger("acp.events")


def is_user_echo(part: Part) -> bool:
    """A text part without a timestamp is the server echoing the user's prompt."""
    return part.type == PartType.TEXT.value and part.time is None


class EventLoop:
    """Reads the upstream feed and turns it into ACP session updates."""

    def __init__(
        self,
        upstream: OpencodeClient,
        sessions: SessionRegistry,
        conn: Client,
        arbiter: ToolPermissionArbiter,
        *,
        reconnect_delay: float = 1.0,
    ) -> None:
        self._upstream = upstream
        self._sessions = sessions
        self._conn = conn
        self._arbiter = arbiter
        self._reconnect_delay = reconnect_delay
        self._queues: dict[str, asyncio.Queue[tuple[EventType, Any]]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    # --- Feed ---

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._stopped = False
            self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        """Consume the feed until stopped, reconnecting when it drops."""
        while not self._stopped:
            try:
                log.info("Subscribing to opencode events")
                async for event in self._upstream.subscribe():
                    self.dispatch(event)
                log.warning("opencode event feed ended")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error("opencode event feed failed: %s", e)
            if not self._stopped:
                await asyncio.sleep(self._reconnect_delay)

    async def stop(self) -> None:
        self._stopped = True
        tasks = list(self._workers.values())
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._workers.clear()
        self._queues.clear()
        self._task = None

    # --- Demultiplexing ---

    def dispatch(self, event: Event) -> None:
        """Route one event to its session's queue. Never blocks."""
        try:
            routed = self._route(event)
        except ValidationError as e:
            log.warning("Dropping malformed %s event: %s", event.type, e)
            return
        if routed is None:
            return

        session_id, kind, payload = routed
        if session_id not in self._sessions:
            log.debug("Dropping %s event for unknown session %s", event.type, session_id)
            return
        self._queue_for(session_id).put_nowait((kind, payload))

    def _route(self, event: Event) -> tuple[str, EventType, Any] | None:
        props = event.properties
        if event.type == EventType.PART_UPDATED.value:
            raw = props.get("part")
            if not isinstance(raw, dict):
                log.warning("Missing part in %s event: %s", event.type, props)
                return None
            part = Part.model_validate(raw)
            if not part.session_id:
                log.warning("Missing sessionID in part %s", part.id)
                return None
            return part.session_id, EventType.PART_UPDATED, part

        if event.type == EventType.MESSAGE_UPDATED.value:
            raw = props.get("info")
            if not isinstance(raw, dict):
                log.warning("Missing info in %s event: %s", event.type, props)
                return None
            info = MessageInfo.model_validate(raw)
            if not info.session_id:
                log.warning("Missing sessionID in message %s", info.id)
                return None
            return info.session_id, EventType.MESSAGE_UPDATED, info

        if event.type == EventType.SERVER_CONNECTED.value:
            log.debug("opencode event feed connected")
        return None

    def _queue_for(self, session_id: str) -> asyncio.Queue[tuple[EventType, Any]]:
        queue = self._queues.get(session_id)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[session_id] = queue
        worker = self._workers.get(session_id)
        if worker is None or worker.done():
            self._workers[session_id] = asyncio.create_task(self._worker(session_id, queue))
        return queue

    async def join(self, session_id: str) -> None:
        """Wait until every event queued so far for the session was handled."""
        queue = self._queues.get(session_id)
        if queue is not None:
            await queue.join()

    def forget(self, session_id: str) -> None:
        """Stop the worker of a session that was removed."""
        worker = self._workers.pop(session_id, None)
        if worker is not None:
            worker.cancel()
        self._queues.pop(session_id, None)

    # --- Per-session handling ---

    async def _worker(self, session_id: str, queue: asyncio.Queue[tuple[EventType, Any]]) -> None:
        while True:
            kind, payload = await queue.get()
            try:
                session = self._sessions.find(session_id)
                if session is None:
                    log.debug("Session %s went away, dropping %s", session_id, kind.value)
                elif kind == EventType.PART_UPDATED:
                    await self.handle_part(session, payload)
                else:
                    await self.handle_message(session, payload)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.exception("Error handling %s for session %s: %s", kind.value, session_id, e)
            finally:
                queue.task_done()

    async def _send(self, session_id: str, updates: list[Any]) -> None:
        for update in updates:
            await self._conn.session_update(session_id, update)

    async def handle_part(self, session: SessionState, part: Part) -> None:
        if is_user_echo(part):
            log.log(TRACE, "Dropping user echo %s", part.id)
            return

        if part.type in (PartType.TEXT.value, PartType.REASONING.value):
            delta = session.deltas.compute(part.id, part.text or "")
            if delta:
                await self._send(session.session_id, map_part(part, delta=delta))
            return

        if part.type == PartType.TOOL.value:
            await self._handle_tool(session, part)
            return

        await self._send(session.session_id, map_part(part))

    async def _handle_tool(self, session: SessionState, part: Part) -> None:
        state = part.state
        if state is None:
            log.warning("Dropping tool part %s without state", part.id)
            return

        call_id = part.call_id or part.id
        record = session.tool_call(call_id, part.tool)
        if record.blocked:
            return

        if state.status == ToolStatus.PENDING:
            if record.status is None:
                await self._arbiter.on_pending(session, part)
            return

        first_seen = record.status is None
        if not record.advance(state.status):
            return

        if first_seen:
            # Pending snapshot was never seen; announce the call in its current state
            await self._send(session.session_id, tool_call_snapshot(part))
            return
        update = map_tool_part(part)
        if update is not None:
            await self._send(session.session_id, [update])

    async def handle_message(self, session: SessionState, info: MessageInfo) -> None:
        if not info.is_assistant or not info.is_finished:
            return
        if session.is_completed(info.id):
            return
        if info.error is not None:
            await self._send(session.session_id, [map_message_error(info.error)])
        session.mark_completed(info)
