"""Background shell commands run through the opencode session shell.

Each terminal wraps one `POST /session/{id}/shell` call running as a local
task. The upstream call returns only when the command exits, so output and
exit code are collected from the shell's tool part afterwards.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from opencode_acp.errors import TerminalNotFoundError
from opencode_acp.logging import get_logger
from opencode_acp.upstream.types import PartType, ToolStatus

if TYPE_CHECKING:
    from opencode_acp.upstream.client import OpencodeClient

log = get_logger("terminal")


class TerminalStatus(Enum):
    """Lifecycle of a background terminal. Only STARTED is non-terminal."""

    STARTED = "started"
    EXITED = "exited"
    ABORTED = "aborted"
    KILLED = "killed"
    TIMED_OUT = "timedOut"


@dataclass
class TerminalExitStatus:
    exit_code: int | None = None
    signal: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"exitCode": self.exit_code, "signal": self.signal}


@dataclass
class BackgroundTerminal:
    """A shell command started on behalf of an ACP client."""

    terminal_id: str
    session_id: str
    command: str
    shell_id: str | None = None  # upstream message id of the shell run
    output: str = ""
    exit_status: TerminalExitStatus | None = None
    status: TerminalStatus = TerminalStatus.STARTED
    released: bool = False
    _done: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def finished(self) -> bool:
        return self.status != TerminalStatus.STARTED


class TerminalTracker:
    """Tracks background terminals for all sessions."""

    def __init__(
        self,
        upstream: OpencodeClient,
        *,
        agent: str = "build",
        default_timeout: float | None = None,
    ) -> None:
        self._upstream = upstream
        self._agent = agent
        self._default_timeout = default_timeout
        self._terminals: dict[str, BackgroundTerminal] = {}

    def _get(self, terminal_id: str) -> BackgroundTerminal:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            raise TerminalNotFoundError(terminal_id)
        return terminal

    def create(self, session_id: str, command: str, *, timeout: float | None = None) -> BackgroundTerminal:
        """Start `command` in the session's shell and return its terminal."""
        terminal = BackgroundTerminal(
            terminal_id=f"term-{uuid.uuid4().hex[:12]}",
            session_id=session_id,
            command=command,
        )
        self._terminals[terminal.terminal_id] = terminal
        effective_timeout = timeout if timeout is not None else self._default_timeout
        terminal._task = asyncio.create_task(self._run(terminal, effective_timeout))
        log.info("Started terminal %s in session %s: %s", terminal.terminal_id, session_id, command)
        return terminal

    async def _run(self, terminal: BackgroundTerminal, timeout: float | None) -> None:
        try:
            info = await asyncio.wait_for(
                self._upstream.shell(terminal.session_id, terminal.command, agent=self._agent),
                timeout=timeout,
            )
            terminal.shell_id = info.id
            output, exit_code = await self._collect(terminal.session_id, info.id)
            terminal.output += output
            if info.error is not None and info.error.is_abort:
                self._finish(terminal, TerminalStatus.ABORTED, TerminalExitStatus(exit_code))
            else:
                self._finish(terminal, TerminalStatus.EXITED, TerminalExitStatus(exit_code))
        except asyncio.TimeoutError:
            log.warning("Terminal %s timed out after %ss", terminal.terminal_id, timeout)
            self._finish(terminal, TerminalStatus.TIMED_OUT, TerminalExitStatus())
        except asyncio.CancelledError:
            self._finish(terminal, TerminalStatus.KILLED, TerminalExitStatus())
            raise
        except Exception as e:
            log.error("Terminal %s failed: %s", terminal.terminal_id, e)
            terminal.output += str(e)
            self._finish(terminal, TerminalStatus.ABORTED, TerminalExitStatus())

    async def _collect(self, session_id: str, message_id: str) -> tuple[str, int]:
        """Output and exit code from the tool part of the shell message."""
        for message in await self._upstream.list_messages(session_id):
            if message.info.id != message_id:
                continue
            for part in message.parts:
                if part.type != PartType.TOOL.value or part.state is None:
                    continue
                state = part.state
                metadata = state.metadata
                if state.status == ToolStatus.ERROR:
                    output = state.error if isinstance(state.error, str) else str(state.error or "")
                    default_exit = 1
                else:
                    output = state.output if isinstance(state.output, str) else metadata.get("output", "")
                    default_exit = 0
                exit_code = metadata.get("exit")
                return str(output or ""), exit_code if isinstance(exit_code, int) else default_exit
        log.debug("No tool part found for shell message %s", message_id)
        return "", 0

    def _finish(
        self,
        terminal: BackgroundTerminal,
        status: TerminalStatus,
        exit_status: TerminalExitStatus,
    ) -> None:
        # Terminal states are entered exactly once
        if terminal.finished:
            return
        terminal.status = status
        terminal.exit_status = exit_status
        terminal._done.set()
        log.info(
            "Terminal %s %s (exit=%s)", terminal.terminal_id, status.value, exit_status.exit_code
        )

    def output(self, terminal_id: str) -> tuple[str, TerminalExitStatus | None]:
        terminal = self._get(terminal_id)
        return terminal.output, terminal.exit_status

    async def wait_for_exit(self, terminal_id: str) -> TerminalExitStatus:
        """Block until the terminal reaches a terminal state."""
        terminal = self._get(terminal_id)
        if not terminal.finished:
            await terminal._done.wait()
        if terminal.released:
            raise TerminalNotFoundError(terminal_id)
        assert terminal.exit_status is not None
        return terminal.exit_status

    def kill(self, terminal_id: str) -> None:
        """Mark the terminal killed and stop waiting on it.

        Only local state changes; the upstream shell may keep running.
        """
        terminal = self._get(terminal_id)
        self._finish(terminal, TerminalStatus.KILLED, TerminalExitStatus())
        if terminal._task is not None and not terminal._task.done():
            terminal._task.cancel()

    def release(self, terminal_id: str) -> None:
        terminal = self._terminals.pop(terminal_id, None)
        if terminal is None:
            raise TerminalNotFoundError(terminal_id)
        terminal.released = True
        if terminal._task is not None and not terminal._task.done():
            terminal._task.cancel()
        terminal._done.set()
        log.debug("Released terminal %s", terminal_id)

    def release_session(self, session_id: str) -> None:
        for terminal_id in [t.terminal_id for t in self._terminals.values() if t.session_id == session_id]:
            self.release(terminal_id)

    def __contains__(self, terminal_id: object) -> bool:
        return terminal_id in self._terminals

    def __len__(self) -> int:
        return len(self._terminals)
