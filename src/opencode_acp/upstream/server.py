"""Spawn and supervise a local `opencode serve` process."""

from __future__ import annotations

import asyncio
import contextlib
import re
import signal
import sys

from opencode_acp.config.schema import UpstreamConfig
from opencode_acp.errors import UpstreamError
from opencode_acp.logging import get_logger

log = get_logger("upstream.server")

_LISTENING_RE = re.compile(r"on\s+(https?://\S+)")


def parse_listening_url(line: str) -> str | None:
    """Extract the base URL from a "opencode server listening on <url>" line."""
    if "listening" not in line:
        return None
    match = _LISTENING_RE.search(line)
    return match.group(1) if match else None


class OpencodeServer:
    """A child `opencode serve` process and the URL it listens on."""

    def __init__(self, config: UpstreamConfig) -> None:
        self._config = config
        self._process: asyncio.subprocess.Process | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self.url: str | None = None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def _command(self) -> list[str]:
        return [
            *self._config.command,
            f"--hostname={self._config.hostname}",
            f"--port={self._config.port}",
        ]

    async def start(self) -> str:
        """Start the server and wait until it reports its URL."""
        cmd = self._command()
        log.info("Starting opencode server: %s", " ".join(cmd))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            raise UpstreamError(0, f"opencode executable not found: {cmd[0]}") from e

        try:
            self.url = await asyncio.wait_for(
                self._read_url(),
                timeout=self._config.startup_timeout,
            )
        except asyncio.TimeoutError:
            await self.stop()
            raise UpstreamError(
                0,
                f"Timeout waiting for opencode server to start after {self._config.startup_timeout}s",
            ) from None
        except UpstreamError:
            await self.stop()
            raise

        # Keep the pipe drained so the child never blocks on a full buffer
        self._drain_task = asyncio.create_task(self._drain_output())
        log.info("opencode server running at %s", self.url)
        return self.url

    async def _read_url(self) -> str:
        assert self._process is not None and self._process.stdout is not None
        collected: list[str] = []
        while True:
            raw = await self._process.stdout.readline()
            if not raw:
                output = "".join(collected).strip()
                raise UpstreamError(
                    0,
                    f"opencode server exited with code {self._process.returncode}"
                    + (f"\nServer output: {output}" if output else ""),
                )
            line = raw.decode("utf-8", errors="replace")
            collected.append(line)
            log.debug("opencode: %s", line.rstrip())
            url = parse_listening_url(line)
            if url:
                return url

    async def _drain_output(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        try:
            while True:
                raw = await self._process.stdout.readline()
                if not raw:
                    break
                log.debug("opencode: %s", raw.decode("utf-8", errors="replace").rstrip())
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Terminate the server, escalating to kill after a short grace period."""
        if self._drain_task is not None:
            self._drain_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._drain_task
            self._drain_task = None

        process = self._process
        if process is None or process.returncode is not None:
            return

        try:
            if sys.platform == "win32":
                process.terminate()
            else:
                process.send_signal(signal.SIGTERM)
            try:
                await asyncio.wait_for(process.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
        except ProcessLookupError:
            pass  # Already gone
        log.info("opencode server stopped")

    async def __aenter__(self) -> OpencodeServer:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()
