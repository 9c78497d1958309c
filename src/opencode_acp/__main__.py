"""Entry point for running the opencode ACP bridge.

Usage:
    python -m opencode_acp                      # spawns `opencode serve`
    python -m opencode_acp --url http://127.0.0.1:4096

This starts the ACP agent listening on stdin/stdout for JSON-RPC
messages from an ACP client (Zed, etc.) and forwards sessions to an
opencode server.
"""

from __future__ import annotations

import argparse
import os
from typing import TYPE_CHECKING

from opencode_acp.config import Config
from opencode_acp.logging import describe_message, get_logger, setup_logging

log = get_logger()

if TYPE_CHECKING:
    from acp.connection import StreamEvent


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="opencode-acp",
        description="Agent Client Protocol bridge for the opencode server",
    )
    parser.add_argument(
        "--url",
        help="Connect to a running opencode server instead of spawning one",
    )
    parser.add_argument("--hostname", help="Hostname for the spawned server")
    parser.add_argument("--port", type=int, help="Port for the spawned server (0 = any)")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=None,
        help="Increase log verbosity (repeat up to 4 times)",
    )
    parser.add_argument("--log-file", help="Write logs to this file")
    return parser.parse_args(argv)


def _apply_args(config: Config, args: argparse.Namespace) -> None:
    """Command line options override every config file."""
    if args.url:
        config.upstream.url = args.url
    if args.hostname:
        config.upstream.hostname = args.hostname
    if args.port is not None:
        config.upstream.port = args.port
    if args.verbose is not None:
        config.logging.verbose = min(args.verbose, 4)
    if args.log_file:
        config.logging.file = args.log_file


def _log_message(event: StreamEvent) -> None:
    from acp.connection import StreamDirection

    direction = "<<" if event.direction == StreamDirection.INCOMING else ">>"
    log.debug("%s %s", direction, describe_message(event.message))


async def _main(config: Config) -> None:
    """Async entry point with proper cleanup."""
    import asyncio

    from acp.agent.connection import AgentSideConnection
    from acp.stdio import stdio_streams

    from opencode_acp.errors import UpstreamError
    from opencode_acp.transport.acp.agent import create_agent
    from opencode_acp.upstream import OpencodeClient, OpencodeServer

    server: OpencodeServer | None = None
    url = config.upstream.url
    if not url:
        server = OpencodeServer(config.upstream)
        try:
            url = await server.start()
        except UpstreamError as e:
            log.error("Could not start opencode server: %s", e)
            return
    log.info("Using opencode server at %s", url)

    upstream = OpencodeClient(base_url=url, timeout=config.upstream.request_timeout)
    agent = create_agent(upstream, config)

    log.info("Setting up stdio connection...")
    output_stream, input_stream = await stdio_streams()
    conn = AgentSideConnection(
        agent,
        input_stream,
        output_stream,
        listening=False,
        use_unstable_protocol=True,
    )
    conn._conn.add_observer(_log_message)

    log.info("Ready to accept ACP requests")

    try:
        await conn.listen()
    except (BrokenPipeError, ConnectionResetError):
        log.info("Pipe closed, shutting down...")
    finally:
        log.info("Connection closed, cleaning up...")
        await agent.close()
        try:
            await asyncio.wait_for(conn.close(), timeout=2.0)
        except asyncio.TimeoutError:
            log.warning("Connection close timed out, forcing exit")
        except Exception as e:
            log.warning("Error during cleanup: %s", e)
        await upstream.aclose()
        if server is not None:
            await server.stop()


def main(argv: list[str] | None = None) -> None:
    """Run the opencode ACP bridge."""
    import asyncio

    from opencode_acp.config import load_config

    args = _parse_args(argv)

    # Load config before logging so we can use config.logging settings
    config = load_config(session_root=os.getcwd())
    _apply_args(config, args)
    setup_logging(config.logging)

    log.info("Starting opencode ACP bridge...")
    log.info(
        "Configuration loaded (url=%s, mode=%s, agent=%s)",
        config.upstream.url or "spawn",
        config.session.default_mode,
        config.session.agent,
    )

    try:
        asyncio.run(_main(config))
    except KeyboardInterrupt:
        pass
    finally:
        # Ensure process exits even if there are lingering resources
        log.info("Exiting...")
        os._exit(0)


if __name__ == "__main__":
    main()
