"""Convert ACP prompt content blocks into opencode message parts."""

from __future__ import annotations

from typing import Any


def _field(block: Any, *names: str) -> Any:
    """Read a field from a content block model or its dict form."""
    for name in names:
        if isinstance(block, dict):
            if name in block:
                return block[name]
        elif hasattr(block, name):
            return getattr(block, name)
    return None


def _data_url(mime: str, data: str) -> str:
    return f"data:{mime};base64,{data}"


def to_upstream_part(block: Any) -> dict[str, Any]:
    kind = _field(block, "type")

    if kind == "text":
        return {"type": "text", "text": _field(block, "text") or ""}

    if kind == "resource_link":
        return {
            "type": "text",
            "text": f"Resource Link: {_field(block, 'uri')} ({_field(block, 'name')})",
        }

    if kind == "resource":
        resource = _field(block, "resource")
        text = _field(resource, "text")
        if text is not None:
            return {"type": "text", "text": text}
        return {"type": "text", "text": f"Binary Resource: {_field(resource, 'uri')}"}

    if kind in ("image", "audio"):
        mime = _field(block, "mime_type", "mimeType") or "application/octet-stream"
        uri = _field(block, "uri") if kind == "image" else None
        return {
            "type": "file",
            "mime": mime,
            "url": uri or _data_url(mime, _field(block, "data") or ""),
        }

    return {"type": "text", "text": f"Unsupported content type: {kind}"}


def to_upstream_parts(prompt: list[Any]) -> list[dict[str, Any]]:
    return [to_upstream_part(block) for block in prompt]


def prompt_text(prompt: list[Any]) -> str:
    """Concatenated text of the prompt's text blocks."""
    return "".join(
        _field(block, "text") or "" for block in prompt if _field(block, "type") == "text"
    )
