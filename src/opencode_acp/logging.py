"""Logging for the opencode ACP bridge.

Stdout carries ACP JSON-RPC, so records go to a log file (config
`logging.file` or OPENCODE_ACP_LOG) or, when stderr is an interactive
console, to stderr. With neither, the bridge runs silently.

Verbosity: error(0), warning(1), info(2), verbose(3), trace(4).
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opencode_acp.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("opencode_acp")

LOG_ENV_VAR = "OPENCODE_ACP_LOG"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s]: %(message)s"

_initialized = False

_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: VERBOSE,
    4: TRACE,
}

_PREVIEW_CHARS = 200


class _LowercaseLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Pick the effective log level; verbose (int) wins over level (str)."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY_MAP.get(config.verbose, TRACE)
    if config.level:
        return _LEVEL_MAP.get(config.level.upper(), logging.INFO)
    return logging.INFO


def resolve_log_path(config: LoggingConfig | None) -> str | None:
    """Log file from config, else from the environment, with `~` expanded."""
    path = config.file if config and config.file else os.environ.get(LOG_ENV_VAR)
    return os.path.expanduser(path) if path else None


def _build_handlers(log_path: str | None) -> list[logging.Handler]:
    if log_path:
        try:
            return [logging.FileHandler(log_path, mode="a", encoding="utf-8")]
        except OSError as e:
            if not sys.stderr.isatty():
                return []
            print(f"[opencode-acp] Failed to open log file {log_path}: {e}", file=sys.stderr)
            return [logging.StreamHandler(sys.stderr)]
    if sys.stderr.isatty():
        return [logging.StreamHandler(sys.stderr)]
    return []


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Install handlers on the `opencode_acp` logger.

    Call once at startup, after config is loaded; later calls are no-ops
    until `reset_logging`.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = resolve_level(config)
    logger.setLevel(level)
    formatter = _LowercaseLevelFormatter(LOG_FORMAT, datefmt="%H:%M:%S")
    for handler in _build_handlers(resolve_log_path(config)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def reset_logging() -> None:
    """Remove installed handlers so `setup_logging` can run again."""
    global _initialized
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    _initialized = False


def describe_message(message: dict[str, Any]) -> str:
    """One-line summary of an ACP JSON-RPC message for traffic logs.

    Responses show their stop reason or error, `session/update`
    notifications their update kind, everything else a truncated body.
    """
    method = message.get("method")
    msg_id = message.get("id", "-")
    size = len(json.dumps(message, default=str))

    if method is None:
        error = message.get("error")
        if error:
            return f"response (id={msg_id}) ERROR: {error}"
        result = message.get("result")
        stop_reason = result.get("stopReason", "-") if isinstance(result, dict) else "-"
        return f"response (id={msg_id}) stop_reason={stop_reason} len={size}"

    if method == "session/update":
        params = message.get("params")
        update = params.get("update") if isinstance(params, dict) else None
        kind = update.get("sessionUpdate", "unknown") if isinstance(update, dict) else "unknown"
        return f"{method} type={kind} len={size}"

    body = json.dumps(message.get("params"), default=str)
    if len(body) > _PREVIEW_CHARS:
        body = body[:_PREVIEW_CHARS] + "..."
    return f"{method} (id={msg_id}) {body}"


def get_logger(name: str | None = None) -> logging.Logger:
    """Child of the `opencode_acp` logger, e.g. get_logger("acp.events")."""
    if name:
        return logger.getChild(name)
    return logger
