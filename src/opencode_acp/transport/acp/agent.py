"""ACP Agent implementation backed by an opencode server.

This module provides the ACP-compatible agent that editors such as Zed
talk to over stdio. Sessions, prompts and cancellation are forwarded to
the opencode HTTP API; everything the model produces comes back through
the event feed and is translated by the EventLoop.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import acp
from acp.schema import (
    AgentCapabilities,
    AvailableCommandsUpdate,
    ClientCapabilities,
    Implementation,
    PromptCapabilities,
    SessionMode,
    SessionModeState,
    SetSessionModelResponse,
    SetSessionModeResponse,
)

from opencode_acp import __version__
from opencode_acp.commands import (
    CommandDefinition,
    SlashCommandRunner,
    load_available_commands,
    load_commands,
    parse_slash_command,
)
from opencode_acp.commands.runner import split_model
from opencode_acp.config import Config, get_config
from opencode_acp.errors import (
    ModelResolutionError,
    SessionNotFoundError,
    TerminalNotFoundError,
    UpstreamError,
)
from opencode_acp.logging import get_logger
from opencode_acp.session import PermissionMode, SessionRegistry, SessionState, ToolPermissionArbiter
from opencode_acp.terminal import TerminalTracker
from opencode_acp.transport.acp.event_loop import EventLoop
from opencode_acp.transport.acp.mapper import map_message_error, map_part, user_message_updates
from opencode_acp.transport.acp.prompt import prompt_text, to_upstream_parts
from opencode_acp.upstream.types import MessageInfo, MessageWithParts, PartType

log = get_logger("acp")

if TYPE_CHECKING:
    from acp.interfaces import Client

    from opencode_acp.upstream.client import OpencodeClient

# JSON-RPC error codes
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

SESSION_MODES = [
    SessionMode(
        id=PermissionMode.DEFAULT.value,
        name="Always Ask",
        description="Prompts for permission on first use of each tool",
    ),
    SessionMode(
        id=PermissionMode.ACCEPT_EDITS.value,
        name="Accept Edits",
        description="Automatically accepts file edit permissions for the session",
    ),
    SessionMode(
        id=PermissionMode.BYPASS_PERMISSIONS.value,
        name="Bypass Permissions",
        description="Skips all permission prompts",
    ),
    SessionMode(
        id=PermissionMode.PLAN.value,
        name="Plan Mode",
        description="Claude can analyze but not modify files or execute commands",
    ),
]

# How long a prompt waits for the feed to deliver its final message
COMPLETION_TIMEOUT = 10.0

TERMINAL_METHOD_PREFIX = "opencode/terminal/"


def stop_reason(info: MessageInfo, cancelled: bool = False) -> str:
    """ACP stop reason for the final assistant message of a turn."""
    if cancelled or (info.error is not None and info.error.is_abort):
        return "cancelled"
    if info.error is not None:
        return "refusal"
    return "end_turn"


class OpencodeAcpAgent:
    """ACP Agent adapter for the opencode server.

    Owns the session registry, the background terminals and the event
    loop. The loop and the permission arbiter need the client connection,
    so they are created in on_connect.
    """

    def __init__(self, upstream: OpencodeClient, config: Config | None = None) -> None:
        self._upstream = upstream
        self._config = config or get_config()
        self._sessions = SessionRegistry()
        self._terminals = TerminalTracker(
            upstream,
            agent=self._config.session.agent,
            default_timeout=self._config.terminal.timeout,
        )
        self._commands = SlashCommandRunner(upstream, agent=self._config.session.agent)
        self._conn: Client | None = None
        self._events: EventLoop | None = None
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    @property
    def terminals(self) -> TerminalTracker:
        return self._terminals

    @property
    def events(self) -> EventLoop | None:
        return self._events

    def on_connect(self, conn: Client) -> None:
        """Called when a client connects."""
        self._conn = conn
        self._events = EventLoop(
            self._upstream,
            self._sessions,
            conn,
            ToolPermissionArbiter(conn),
            reconnect_delay=self._config.upstream.reconnect_delay,
        )

    def _ensure_event_loop(self) -> None:
        if self._events is not None:
            self._events.start()

    async def close(self) -> None:
        """Stop the event loop and drop all terminals."""
        if self._events is not None:
            await self._events.stop()
        for session in self._sessions:
            self._terminals.release_session(session.session_id)
        for task in list(self._background):
            task.cancel()

    # --- Helpers ---

    def _get_session(self, session_id: str) -> SessionState:
        try:
            return self._sessions.get(session_id)
        except SessionNotFoundError as e:
            raise acp.RequestError(code=INVALID_PARAMS, message=str(e)) from e

    async def _emit(self, session_id: str, update: Any) -> None:
        if self._conn:
            await self._conn.session_update(session_id, update)

    async def _report_error(self, session_id: str, error: Exception) -> None:
        try:
            await self._emit(session_id, acp.update_agent_message_text(f"Error: {error}"))
        except Exception as e:
            log.warning("Failed to report error to client: %s", e)

    def _modes(self, session: SessionState) -> SessionModeState:
        return SessionModeState(
            available_modes=SESSION_MODES,
            current_mode_id=session.permission_mode.value,
        )

    def _initial_mode(self) -> PermissionMode:
        try:
            return PermissionMode.parse(self._config.session.default_mode)
        except ValueError:
            log.warning("Unknown default mode %r, using default", self._config.session.default_mode)
            return PermissionMode.DEFAULT

    async def _send_available_commands(self, session: SessionState) -> None:
        commands = load_available_commands(session.cwd)
        try:
            await self._emit(
                session.session_id,
                AvailableCommandsUpdate(
                    session_update="available_commands_update",
                    available_commands=commands,
                ),
            )
        except Exception as e:
            log.warning("Failed to send available commands: %s", e)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # --- ACP methods ---

    async def initialize(
        self,
        protocol_version: int,
        client_capabilities: ClientCapabilities | None = None,
        client_info: Implementation | None = None,
        **kwargs: Any,
    ) -> acp.InitializeResponse:
        """Handle initialization request from client."""
        return acp.InitializeResponse(
            protocol_version=acp.PROTOCOL_VERSION,
            agent_info=Implementation(
                name="opencode-acp",
                version=__version__,
            ),
            agent_capabilities=AgentCapabilities(
                load_session=True,
                prompt_capabilities=PromptCapabilities(
                    image=True,
                    audio=True,
                    embedded_context=True,
                ),
            ),
        )

    async def new_session(
        self,
        cwd: str,
        mcp_servers: list[Any] | None = None,
        **kwargs: Any,
    ) -> acp.NewSessionResponse:
        """Create an upstream session and register it."""
        self._ensure_event_loop()
        try:
            session_id = await self._upstream.create_session(cwd)
        except UpstreamError as e:
            log.error("Failed to create session: %s", e)
            raise acp.RequestError(
                code=INTERNAL_ERROR,
                message="Failed to create opencode session",
                data={"details": str(e)},
            ) from e

        session = await self._sessions.add(
            SessionState(session_id=session_id, cwd=cwd, permission_mode=self._initial_mode())
        )
        log.info("Created session %s in %s", session_id, cwd)

        # Delivered after the response so the client already knows the session
        self._spawn(self._send_available_commands(session))

        return acp.NewSessionResponse(session_id=session_id, modes=self._modes(session))

    async def load_session(
        self,
        cwd: str,
        mcp_servers: list[Any] | None = None,
        session_id: str = "",
        **kwargs: Any,
    ) -> acp.LoadSessionResponse | None:
        """Attach to an existing upstream session and replay its history."""
        self._ensure_event_loop()
        existing = self._sessions.find(session_id)
        if existing is not None:
            log.info("Session %s already loaded", session_id)
            return acp.LoadSessionResponse(modes=self._modes(existing))

        try:
            messages = await self._upstream.list_messages(session_id)
        except UpstreamError as e:
            log.error("Failed to load session %s: %s", session_id, e)
            code = INVALID_PARAMS if e.status_code == 404 else INTERNAL_ERROR
            raise acp.RequestError(
                code=code,
                message=f"Failed to load session: {session_id}",
                data={"details": str(e)},
            ) from e

        session = SessionState(session_id=session_id, cwd=cwd, permission_mode=self._initial_mode())
        await self._replay(session, messages)

        # Registered after replay so live events never interleave with history
        session = await self._sessions.add(session)
        log.info("Loaded session %s (%d messages)", session_id, len(messages))
        self._spawn(self._send_available_commands(session))

        return acp.LoadSessionResponse(modes=self._modes(session))

    async def _replay(self, session: SessionState, messages: list[MessageWithParts]) -> None:
        for message in messages:
            info = message.info
            if not info.is_assistant:
                for part in message.parts:
                    for update in user_message_updates(part):
                        await self._emit(session.session_id, update)
                continue

            for part in message.parts:
                if part.type in (PartType.TEXT.value, PartType.REASONING.value):
                    session.deltas.seed(part.id, part.text or "")
                elif part.type == PartType.TOOL.value and part.state is not None:
                    session.tool_call(part.call_id or part.id, part.tool).status = part.state.status
                for update in map_part(part, replay=True):
                    await self._emit(session.session_id, update)

            if info.error is not None:
                await self._emit(session.session_id, map_message_error(info.error))

    async def set_session_mode(
        self,
        mode_id: str,
        session_id: str,
        **kwargs: Any,
    ) -> SetSessionModeResponse | None:
        """Set the permission mode of a session."""
        session = self._get_session(session_id)
        try:
            session.permission_mode = PermissionMode.parse(mode_id)
        except ValueError:
            valid = [m.id for m in SESSION_MODES]
            raise acp.RequestError(
                code=INVALID_PARAMS,
                message=f"Invalid mode: {mode_id}. Valid modes: {valid}",
            ) from None
        log.info("Session %s mode set to %s", session_id, mode_id)
        return SetSessionModeResponse()

    async def set_session_model(
        self,
        model_id: str,
        session_id: str,
        **kwargs: Any,
    ) -> SetSessionModelResponse | None:
        """Select the model used for this session's prompts ("provider/model")."""
        session = self._get_session(session_id)
        model = split_model(model_id)
        if model is None:
            raise acp.RequestError(
                code=INVALID_PARAMS,
                message=f"Invalid model: {model_id}. Expected provider/model",
            )
        session.model = model
        log.info("Session %s model set to %s", session_id, model_id)
        return SetSessionModelResponse()

    async def authenticate(
        self,
        method_id: str,
        **kwargs: Any,
    ) -> acp.AuthenticateResponse | None:
        """Handle authentication (not implemented)."""
        return None

    async def prompt(
        self,
        prompt: list[Any],
        session_id: str,
        **kwargs: Any,
    ) -> acp.PromptResponse:
        """Handle a prompt request.

        Slash commands are run locally or through the command endpoint.
        Everything else is sent as a message; the response is returned once
        the feed has delivered the final assistant message, so every update
        of the turn reaches the client before the turn ends.
        """
        session = self._get_session(session_id)

        parsed = parse_slash_command(prompt_text(prompt))
        if parsed:
            name, arguments = parsed
            available = load_commands(session.cwd)
            command = next((c for c in available if c.name == name), None)
            if command is not None:
                return await self._run_command(session, command, arguments, available)

        session.begin_turn()
        try:
            result = await self._upstream.prompt(
                session_id,
                to_upstream_parts(prompt),
                model=session.model,
            )
        except UpstreamError as e:
            log.error("Prompt failed for session %s: %s", session_id, e)
            await self._report_error(session_id, e)
            raise acp.RequestError(
                code=INTERNAL_ERROR,
                message="opencode prompt failed",
                data={"details": str(e)},
            ) from e

        await self._await_completion(session, result.info)
        reason = stop_reason(result.info, session.cancelled)
        log.info("Prompt for session %s finished: %s", session_id, reason)
        return acp.PromptResponse(stop_reason=reason)

    async def _await_completion(self, session: SessionState, info: MessageInfo) -> None:
        try:
            await session.wait_for_completion(info.id, timeout=COMPLETION_TIMEOUT)
        except asyncio.TimeoutError:
            log.warning(
                "Completion of message %s in session %s not seen on the event feed",
                info.id,
                session.session_id,
            )

    async def _run_command(
        self,
        session: SessionState,
        command: CommandDefinition,
        arguments: str,
        available: list[CommandDefinition],
    ) -> acp.PromptResponse:
        session.begin_turn()
        try:
            result = await self._commands.run(session, command, arguments, available)
        except ModelResolutionError as e:
            await self._report_error(session.session_id, e)
            return acp.PromptResponse(stop_reason="end_turn")
        except UpstreamError as e:
            log.error("/%s failed for session %s: %s", command.name, session.session_id, e)
            await self._report_error(session.session_id, e)
            raise acp.RequestError(
                code=INTERNAL_ERROR,
                message=f"/{command.name} failed",
                data={"details": str(e)},
            ) from e

        if result.text:
            await self._emit(session.session_id, acp.update_agent_message_text(result.text))
        if result.message is not None:
            await self._await_completion(session, result.message.info)
            return acp.PromptResponse(stop_reason=stop_reason(result.message.info, session.cancelled))
        return acp.PromptResponse(stop_reason="end_turn")

    async def cancel(self, session_id: str, **kwargs: Any) -> None:
        """Cancel the current turn: flag the session and abort upstream."""
        session = self._sessions.find(session_id)
        if session is None:
            log.warning("Cancel for unknown session %s", session_id)
            return
        session.cancelled = True
        try:
            await self._upstream.abort(session_id)
        except UpstreamError as e:
            log.error("Abort failed for session %s: %s", session_id, e)

    async def ext_method(
        self,
        method: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Handle extension methods (background terminals)."""
        name = method.lstrip("_")
        if not name.startswith(TERMINAL_METHOD_PREFIX):
            raise acp.RequestError(code=METHOD_NOT_FOUND, message=f"Unknown method: {method}")
        try:
            return await self._terminal_method(name[len(TERMINAL_METHOD_PREFIX):], params)
        except (TerminalNotFoundError, SessionNotFoundError) as e:
            raise acp.RequestError(code=INVALID_PARAMS, message=str(e)) from e

    async def _terminal_method(self, op: str, params: dict[str, Any]) -> dict[str, Any]:
        if op == "create":
            session = self._get_session(params.get("sessionId", ""))
            command = params.get("command")
            if not isinstance(command, str) or not command:
                raise acp.RequestError(code=INVALID_PARAMS, message="command is required")
            args = params.get("args")
            if isinstance(args, list) and args:
                command = " ".join([command, *map(str, args)])
            timeout = params.get("timeout")
            terminal = self._terminals.create(
                session.session_id,
                command,
                timeout=float(timeout) if timeout is not None else None,
            )
            return {"terminalId": terminal.terminal_id}

        terminal_id = params.get("terminalId", "")
        if op == "output":
            output, exit_status = self._terminals.output(terminal_id)
            return {
                "output": output,
                "truncated": False,
                "exitStatus": exit_status.to_dict() if exit_status else None,
            }
        if op == "wait_for_exit":
            return (await self._terminals.wait_for_exit(terminal_id)).to_dict()
        if op == "kill":
            self._terminals.kill(terminal_id)
            return {}
        if op == "release":
            self._terminals.release(terminal_id)
            return {}
        raise acp.RequestError(code=METHOD_NOT_FOUND, message=f"Unknown terminal method: {op}")

    async def ext_notification(
        self,
        method: str,
        params: dict[str, Any],
    ) -> None:
        """Handle extension notifications."""
        log.debug("Ignoring extension notification %s", method)


def create_agent(upstream: OpencodeClient, config: Config | None = None) -> OpencodeAcpAgent:
    """Create a new agent instance."""
    return OpencodeAcpAgent(upstream, config)
