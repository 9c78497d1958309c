"""Execution of slash commands typed into an ACP prompt."""

from __future__ import annotations

import os
import secrets
import string
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from opencode_acp.commands.loader import CommandDefinition
from opencode_acp.errors import ModelResolutionError
from opencode_acp.logging import get_logger

if TYPE_CHECKING:
    from opencode_acp.session.state import SessionState
    from opencode_acp.upstream.client import OpencodeClient
    from opencode_acp.upstream.types import MessageWithParts

log = get_logger("commands")

_BASE62 = string.digits + string.ascii_uppercase + string.ascii_lowercase
_last_id_time = 0
_id_counter = 0


def ascending_message_id() -> str:
    """A new message id sorting after every id created before it."""
    global _last_id_time, _id_counter
    now = int(time.time() * 1000)
    if now != _last_id_time:
        _last_id_time = now
        _id_counter = 0
    _id_counter += 1
    # 48-bit big-endian time prefix, then a random tail
    value = (now * 0x1000 + _id_counter) & ((1 << 48) - 1)
    suffix = "".join(secrets.choice(_BASE62) for _ in range(14))
    return f"msg_{value.to_bytes(6, 'big').hex()}{suffix}"


def parse_slash_command(text: str) -> tuple[str, str] | None:
    """Split "/name args" into (name, args); None if not a slash command."""
    stripped = text.strip()
    if not stripped.startswith("/") or len(stripped) == 1:
        return None
    name, _, arguments = stripped[1:].partition(" ")
    if not name or "/" in name:
        return None
    return name, arguments.strip()


def split_model(value: str) -> tuple[str, str] | None:
    provider, sep, model = value.partition("/")
    if not sep or not provider or not model:
        return None
    return provider, model


@dataclass
class CommandResult:
    """Outcome of a slash command.

    `text` is reported to the user as an agent message. `message` is set
    when the command ran a model turn upstream, whose output streams
    through the event feed.
    """

    text: str | None = None
    message: MessageWithParts | None = None


class SlashCommandRunner:
    """Runs built-in and project slash commands against the upstream."""

    def __init__(self, upstream: OpencodeClient, *, agent: str | None = None) -> None:
        self._upstream = upstream
        self._agent = agent

    async def resolve_model(self, session: SessionState) -> tuple[str, str]:
        """Session model, else configured model, else the providers default."""
        if session.model:
            return session.model

        config = await self._upstream.get_config()
        configured = config.get("model")
        if isinstance(configured, str):
            model = split_model(configured)
            if model:
                return model

        providers = await self._upstream.list_providers()
        defaults = providers.get("default") or {}
        if isinstance(defaults, dict) and defaults:
            for provider in providers.get("providers") or []:
                provider_id = provider.get("id") if isinstance(provider, dict) else None
                if provider_id in defaults:
                    return provider_id, str(defaults[provider_id])
            provider_id, model_id = next(iter(defaults.items()))
            return str(provider_id), str(model_id)

        raise ModelResolutionError("No model configured and no provider default available")

    async def run(
        self,
        session: SessionState,
        command: CommandDefinition,
        arguments: str,
        available: list[CommandDefinition],
    ) -> CommandResult:
        log.info("Running /%s in session %s", command.name, session.session_id)
        if not command.builtin:
            return await self._run_custom(session, command, arguments)

        handler = getattr(self, f"_cmd_{command.name}", None)
        if handler is None:
            return CommandResult(text=f"Command /{command.name} is not supported.")
        return await handler(session, arguments, available)

    async def _run_custom(self, session: SessionState, command: CommandDefinition, arguments: str) -> CommandResult:
        message = await self._upstream.command(
            session.session_id,
            command.name,
            arguments,
            model=session.model,
            agent=self._agent,
        )
        return CommandResult(message=message)

    # --- Built-ins ---

    async def _cmd_help(self, session: SessionState, arguments: str, available: list[CommandDefinition]) -> CommandResult:
        lines = ["Available commands:", ""]
        for command in available:
            usage = f"/{command.name}" + (f" {command.hint}" if command.hint else "")
            lines.append(f"  {usage} - {command.description}" if command.description else f"  {usage}")
        return CommandResult(text="\n".join(lines))

    async def _cmd_models(self, session: SessionState, arguments: str, available: list[CommandDefinition]) -> CommandResult:
        providers = await self._upstream.list_providers()
        defaults: dict[str, Any] = providers.get("default") or {}
        lines = ["Available models:", ""]
        for provider in providers.get("providers") or []:
            if not isinstance(provider, dict):
                continue
            provider_id = provider.get("id", "")
            lines.append(f"{provider.get('name') or provider_id}:")
            models = provider.get("models") or {}
            for model_id, info in models.items():
                name = info.get("name") if isinstance(info, dict) else None
                marker = " (default)" if defaults.get(provider_id) == model_id else ""
                label = f" - {name}" if name and name != model_id else ""
                lines.append(f"  {provider_id}/{model_id}{label}{marker}")
        if len(lines) == 2:
            return CommandResult(text="No models available.")
        if session.model:
            lines.extend(["", f"Current: {session.model[0]}/{session.model[1]}"])
        return CommandResult(text="\n".join(lines))

    async def _cmd_compact(self, session: SessionState, arguments: str, available: list[CommandDefinition]) -> CommandResult:
        model = await self.resolve_model(session)
        await self._upstream.summarize(session.session_id, model)
        return CommandResult(text="Session compacted.")

    _cmd_summarize = _cmd_compact

    async def _cmd_init(self, session: SessionState, arguments: str, available: list[CommandDefinition]) -> CommandResult:
        model = await self.resolve_model(session)
        await self._upstream.init_session(session.session_id, ascending_message_id(), model)
        return CommandResult(text=f"Initialized AGENTS.md in {os.path.basename(session.cwd) or session.cwd}.")

    async def _cmd_undo(self, session: SessionState, arguments: str, available: list[CommandDefinition]) -> CommandResult:
        messages = await self._upstream.list_messages(session.session_id)
        last_user = next((m for m in reversed(messages) if m.info.role == "user"), None)
        if last_user is None:
            return CommandResult(text="Nothing to undo.")
        await self._upstream.revert(session.session_id, last_user.info.id)
        return CommandResult(text="Undid the last message.")

    async def _cmd_redo(self, session: SessionState, arguments: str, available: list[CommandDefinition]) -> CommandResult:
        await self._upstream.unrevert(session.session_id)
        return CommandResult(text="Restored the previously undone message.")

    async def _cmd_share(self, session: SessionState, arguments: str, available: list[CommandDefinition]) -> CommandResult:
        info = await self._upstream.share(session.session_id)
        share = info.get("share")
        url = share.get("url") if isinstance(share, dict) else None
        return CommandResult(text=f"Session shared: {url}" if url else "Session shared.")

    async def _cmd_unshare(self, session: SessionState, arguments: str, available: list[CommandDefinition]) -> CommandResult:
        await self._upstream.unshare(session.session_id)
        return CommandResult(text="Session unshared.")
