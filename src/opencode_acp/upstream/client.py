"""Async HTTP client for the opencode server.

Covers the calls the bridge needs: session lifecycle, prompting, shell,
history replay, model resolution, slash commands, and the `/event` feed.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import ValidationError

from opencode_acp.errors import UpstreamError
from opencode_acp.logging import get_logger
from opencode_acp.upstream.types import Event, MessageInfo, MessageWithParts

log = get_logger("upstream")

# Prompts, shell runs and the event feed can stay open for minutes
_NO_TIMEOUT = httpx.Timeout(None)


class OpencodeClient:
    """Typed client for the opencode server HTTP API."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout,
        )

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Request plumbing ---

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> Any:
        kwargs: dict[str, Any] = {"json": json_body, "params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(0, f"{method} {path} failed: {e}", path=path) from e

        self._raise_for_status(response)
        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError:
            return {"value": response.text}

    @staticmethod
    def _extract_error_message(payload: Any, fallback: str) -> str:
        if isinstance(payload, dict):
            err = payload.get("error")
            if isinstance(err, dict):
                message = err.get("message") or err.get("data", {}).get("message")
                if isinstance(message, str) and message.strip():
                    return message
            if isinstance(err, str) and err.strip():
                return err
            message = payload.get("message")
            if isinstance(message, str) and message.strip():
                return message
            data = payload.get("data")
            if isinstance(data, dict):
                message = data.get("message")
                if isinstance(message, str) and message.strip():
                    return message
        return fallback

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return

        payload: Any | None
        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        message = self._extract_error_message(
            payload,
            f"HTTP {response.status_code} for {response.request.method} {response.request.url.path}",
        )
        raise UpstreamError(
            status_code=response.status_code,
            message=message,
            payload=payload,
            path=response.request.url.path,
        )

    @staticmethod
    def _stream_payload(line: str) -> str | None:
        value = line.strip()
        if not value or value.startswith(":") or value.startswith("event:"):
            return None
        if value.startswith("data:"):
            value = value[5:].strip()
        if not value or value == "[DONE]":
            return None
        return value

    # --- Sessions ---

    async def create_session(self, cwd: str) -> str:
        """Create a session rooted at `cwd` and return its id."""
        result = await self._request_json(
            "POST",
            "/session",
            json_body={},
            params={"directory": cwd},
        )
        if not isinstance(result, dict) or not result.get("id"):
            raise UpstreamError(0, f"Failed to create opencode session: {result!r}", payload=result)
        return str(result["id"])

    async def prompt(
        self,
        session_id: str,
        parts: list[dict[str, Any]],
        *,
        model: tuple[str, str] | None = None,
        agent: str | None = None,
    ) -> MessageWithParts:
        """Send a prompt and wait for the final assistant message."""
        body: dict[str, Any] = {"parts": parts}
        if model:
            body["model"] = {"providerID": model[0], "modelID": model[1]}
        if agent:
            body["agent"] = agent
        result = await self._request_json(
            "POST",
            f"/session/{session_id}/message",
            json_body=body,
            timeout=_NO_TIMEOUT,
        )
        if not isinstance(result, dict):
            raise UpstreamError(0, "Unexpected empty response from opencode prompt", payload=result)
        return MessageWithParts.model_validate(result)

    async def abort(self, session_id: str) -> bool:
        result = await self._request_json("POST", f"/session/{session_id}/abort")
        return bool(result)

    async def shell(self, session_id: str, command: str, *, agent: str) -> MessageInfo:
        """Run a shell command inside the session; returns once it exits."""
        result = await self._request_json(
            "POST",
            f"/session/{session_id}/shell",
            json_body={"agent": agent, "command": command},
            timeout=_NO_TIMEOUT,
        )
        if not isinstance(result, dict):
            raise UpstreamError(0, "Unexpected empty response from opencode shell", payload=result)
        info = result.get("info", result)
        return MessageInfo.model_validate(info)

    async def list_messages(self, session_id: str) -> list[MessageWithParts]:
        result = await self._request_json("GET", f"/session/{session_id}/message")
        if not isinstance(result, list):
            return []
        return [MessageWithParts.model_validate(item) for item in result]

    # --- Config and providers ---

    async def get_config(self) -> dict[str, Any]:
        result = await self._request_json("GET", "/config")
        return result if isinstance(result, dict) else {}

    async def list_providers(self) -> dict[str, Any]:
        """Return {"providers": [...], "default": {provider_id: model_id}}."""
        result = await self._request_json("GET", "/config/providers")
        return result if isinstance(result, dict) else {"providers": [], "default": {}}

    # --- Slash command endpoints ---

    async def command(
        self,
        session_id: str,
        command: str,
        arguments: str,
        *,
        model: tuple[str, str] | None = None,
        agent: str | None = None,
    ) -> MessageWithParts:
        body: dict[str, Any] = {"command": command, "arguments": arguments}
        if model:
            body["model"] = f"{model[0]}/{model[1]}"
        if agent:
            body["agent"] = agent
        result = await self._request_json(
            "POST",
            f"/session/{session_id}/command",
            json_body=body,
            timeout=_NO_TIMEOUT,
        )
        if not isinstance(result, dict):
            raise UpstreamError(0, "Unexpected empty response from opencode command", payload=result)
        return MessageWithParts.model_validate(result)

    async def summarize(self, session_id: str, model: tuple[str, str]) -> bool:
        result = await self._request_json(
            "POST",
            f"/session/{session_id}/summarize",
            json_body={"providerID": model[0], "modelID": model[1]},
            timeout=_NO_TIMEOUT,
        )
        return bool(result)

    async def init_session(self, session_id: str, message_id: str, model: tuple[str, str]) -> bool:
        result = await self._request_json(
            "POST",
            f"/session/{session_id}/init",
            json_body={"messageID": message_id, "providerID": model[0], "modelID": model[1]},
            timeout=_NO_TIMEOUT,
        )
        return bool(result)

    async def revert(self, session_id: str, message_id: str) -> dict[str, Any]:
        result = await self._request_json(
            "POST",
            f"/session/{session_id}/revert",
            json_body={"messageID": message_id},
        )
        return result if isinstance(result, dict) else {}

    async def unrevert(self, session_id: str) -> dict[str, Any]:
        result = await self._request_json("POST", f"/session/{session_id}/unrevert")
        return result if isinstance(result, dict) else {}

    async def share(self, session_id: str) -> dict[str, Any]:
        result = await self._request_json("POST", f"/session/{session_id}/share")
        return result if isinstance(result, dict) else {}

    async def unshare(self, session_id: str) -> dict[str, Any]:
        result = await self._request_json("DELETE", f"/session/{session_id}/share")
        return result if isinstance(result, dict) else {}

    # --- Event feed ---

    async def subscribe(self) -> AsyncIterator[Event]:
        """Yield events from the server's single ordered `/event` feed."""
        request = self._client.build_request("GET", "/event", timeout=_NO_TIMEOUT)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamError(0, f"GET /event failed: {e}", path="/event") from e

        try:
            if not response.is_success:
                await response.aread()
                self._raise_for_status(response)
            async for line in response.aiter_lines():
                payload_line = self._stream_payload(line)
                if payload_line is None:
                    continue
                try:
                    payload = json.loads(payload_line)
                except json.JSONDecodeError:
                    log.debug("Skipping undecodable event line: %s", payload_line[:200])
                    continue
                if not isinstance(payload, dict) or "type" not in payload:
                    log.debug("Skipping event without type: %s", payload_line[:200])
                    continue
                try:
                    event = Event.model_validate(payload)
                except ValidationError as e:
                    log.debug("Skipping malformed %s event: %s", payload["type"], e)
                    continue
                yield event
        finally:
            await response.aclose()
