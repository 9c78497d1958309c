"""Translate opencode message parts into ACP session updates.

Stateless: deltas are computed by the caller and passed in. Every function
returns a list of update models ready for `session_update`; an empty list
means nothing is sent.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from acp import helpers

from opencode_acp.logging import get_logger
from opencode_acp.upstream.types import MessageError, Part, PartType, ToolStatus

log = get_logger("acp.mapper")


class ToolKind(Enum):
    """ACP tool kinds."""

    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    MOVE = "move"
    SEARCH = "search"
    EXECUTE = "execute"
    THINK = "think"
    FETCH = "fetch"
    SWITCH_MODE = "switch_mode"
    OTHER = "other"


# First matching prefix wins
_KIND_PREFIXES: list[tuple[tuple[str, ...], ToolKind]] = [
    (("read",), ToolKind.READ),
    (("write", "edit", "apply", "insert"), ToolKind.EDIT),
    (("execute",), ToolKind.EXECUTE),
    (("search", "list"), ToolKind.SEARCH),
    (("browser",), ToolKind.FETCH),
    (("update", "ask", "new_task"), ToolKind.THINK),
    (("switch",), ToolKind.SWITCH_MODE),
]

ACP_TOOL_STATUS = {
    ToolStatus.PENDING: "pending",
    ToolStatus.RUNNING: "in_progress",
    ToolStatus.COMPLETED: "completed",
    ToolStatus.ERROR: "failed",
}

# Part types that carry no user-visible content
_SILENT_PARTS = {
    PartType.SNAPSHOT.value,
    PartType.AGENT.value,
    PartType.STEP_START.value,
    PartType.STEP_FINISH.value,
}


def infer_tool_kind(tool_name: str | None) -> ToolKind:
    """Infer the ACP kind of a tool from its name prefix."""
    name = tool_name or ""
    for prefixes, kind in _KIND_PREFIXES:
        if name.startswith(prefixes):
            return kind
    return ToolKind.OTHER


def _dump(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _text_content(text: str) -> list[Any]:
    return [helpers.tool_content(helpers.text_block(text))]


# --- Tool calls ---


def tool_call_start(part: Part, status: str = "pending") -> Any:
    """The `tool_call` notification announcing a tool call."""
    state = part.state
    return helpers.start_tool_call(
        part.call_id or part.id,
        part.tool or "tool",
        kind=infer_tool_kind(part.tool).value,
        status=status,
        raw_input=state.input if state and state.input else None,
    )


def tool_call_failed(call_id: str, message: str) -> Any:
    return helpers.update_tool_call(
        call_id,
        status="failed",
        content=_text_content(message),
    )


def _diff_content(part: Part) -> list[Any] | None:
    """Diff content for an edit/write completion, or None if not diff-shaped."""
    state = part.state
    if state is None:
        return None

    filediff = state.metadata.get("filediff")
    if isinstance(filediff, dict) and filediff.get("file"):
        return [
            helpers.tool_diff_content(
                filediff["file"],
                filediff.get("after") or "",
                filediff.get("before"),
            )
        ]

    path = state.input.get("filePath")
    if not isinstance(path, str) or not path:
        return None
    if "newString" in state.input:
        return [
            helpers.tool_diff_content(
                path,
                state.input.get("newString") or "",
                state.input.get("oldString"),
            )
        ]
    if "content" in state.input:
        return [helpers.tool_diff_content(path, state.input.get("content") or "", None)]
    return None


def map_tool_part(part: Part) -> Any | None:
    """Map one tool snapshot to its lifecycle notification."""
    state = part.state
    if state is None:
        log.warning("Tool part %s has no state", part.id)
        return None

    status = state.status
    call_id = part.call_id or part.id

    if status == ToolStatus.PENDING:
        return tool_call_start(part)

    if status == ToolStatus.RUNNING:
        return helpers.update_tool_call(
            call_id,
            title=state.title or part.tool,
            status="in_progress",
            content=_text_content(f"Tool input: {json.dumps(state.input or {})}"),
        )

    if status == ToolStatus.COMPLETED:
        content = None
        if infer_tool_kind(part.tool) == ToolKind.EDIT:
            content = _diff_content(part)
        if content is None:
            content = _text_content(_dump(state.output))
        return helpers.update_tool_call(
            call_id,
            title=state.title or None,
            status="completed",
            content=content,
            raw_output=state.output if state.output is not None else None,
        )

    # ToolStatus.ERROR
    return helpers.update_tool_call(
        call_id,
        status="failed",
        content=_text_content(_dump(state.error)),
    )


def tool_call_snapshot(part: Part) -> list[Any]:
    """Announce a call first seen past pending: its start, then its outcome if final."""
    state = part.state
    if state is None:
        return []
    updates = [tool_call_start(part, status=ACP_TOOL_STATUS[state.status])]
    if state.status.is_terminal:
        updates.append(map_tool_part(part))
    return updates


# --- Everything else ---


def _file_update(part: Part) -> Any:
    mime = part.mime or "application/octet-stream"
    url = part.url or ""
    if mime.startswith("image/"):
        data = ""
        uri: str | None = url or None
        if url.startswith("data:") and "," in url:
            data = url.split(",", 1)[1]
            uri = None
        return helpers.update_agent_message(helpers.image_block(data, mime, uri=uri))
    return helpers.update_agent_message_text(f"File: {part.filename or url} ({mime})")


def _patch_update(part: Part) -> Any:
    return helpers.start_tool_call(
        f"patch-{part.hash}",
        f"Applying patch to {', '.join(part.files)}",
        kind=ToolKind.EDIT.value,
        status="completed",
        content=_text_content(f"Patch applied with hash: {part.hash}"),
    )


def map_message_error(error: MessageError) -> Any:
    detail = error.detail or json.dumps(error.data)
    return helpers.update_agent_message_text(f"Error from OpenCode: {error.name} - {detail}")


def map_part(
    part: Part,
    *,
    message_error: MessageError | None = None,
    delta: str | None = None,
    replay: bool = False,
) -> list[Any]:
    """Map one part snapshot to zero or more ACP updates.

    For text and reasoning parts `delta` is the new suffix to forward; when
    replaying history the full text is used instead. Tool parts map by
    their current status.
    """
    updates: list[Any] = []
    kind = part.type

    if kind in (PartType.TEXT.value, PartType.REASONING.value):
        text = (part.text or "") if replay or delta is None else delta
        if text:
            if kind == PartType.TEXT.value:
                updates.append(helpers.update_agent_message_text(text))
            else:
                updates.append(helpers.update_agent_thought_text(text))
    elif kind == PartType.TOOL.value:
        if replay:
            updates.extend(tool_call_snapshot(part))
        else:
            update = map_tool_part(part)
            if update is not None:
                updates.append(update)
    elif kind == PartType.FILE.value:
        updates.append(_file_update(part))
    elif kind == PartType.PATCH.value:
        updates.append(_patch_update(part))
    elif kind in _SILENT_PARTS:
        pass
    else:
        log.warning("Unhandled opencode part type: %s", kind)

    if message_error is not None:
        updates.append(map_message_error(message_error))

    return updates


def user_message_updates(part: Part) -> list[Any]:
    """Updates replaying a user message part."""
    if part.type == PartType.TEXT.value and part.text and not part.synthetic:
        return [helpers.update_user_message_text(part.text)]
    if part.type == PartType.FILE.value:
        label = part.filename or part.url or ""
        return [helpers.update_user_message_text(f"File: {label} ({part.mime or 'unknown'})")]
    return []
