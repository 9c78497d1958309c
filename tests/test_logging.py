"""Tests for logging setup and ACP traffic summaries."""

from __future__ import annotations

import io
import logging
import sys
from pathlib import Path

import pytest

from opencode_acp.config.schema import LoggingConfig
from opencode_acp.logging import (
    LOG_ENV_VAR,
    describe_message,
    get_logger,
    logger,
    reset_logging,
    resolve_log_path,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


# =============================================================================
# Setup Tests
# =============================================================================


class TestResolveLogPath:
    def test_config_wins_over_env(self, monkeypatch):
        monkeypatch.setenv(LOG_ENV_VAR, "/tmp/from-env.log")
        assert resolve_log_path(LoggingConfig(file="/tmp/from-config.log")) == "/tmp/from-config.log"

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv(LOG_ENV_VAR, "/tmp/from-env.log")
        assert resolve_log_path(None) == "/tmp/from-env.log"

    def test_home_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert resolve_log_path(LoggingConfig(file="~/bridge.log")) == str(tmp_path / "bridge.log")

    def test_nothing_configured(self, monkeypatch):
        monkeypatch.delenv(LOG_ENV_VAR, raising=False)
        assert resolve_log_path(LoggingConfig()) is None


class TestSetupLogging:
    def test_writes_to_file(self, tmp_path: Path):
        log_file = tmp_path / "bridge.log"
        setup_logging(LoggingConfig(file=str(log_file), verbose=3))

        get_logger("acp.events").log(15, "tool call %s", "call_1")
        for handler in logger.handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip()
        assert "verbose [opencode_acp.acp.events]: tool call call_1" in line

    def test_level_filters_records(self, tmp_path: Path):
        log_file = tmp_path / "bridge.log"
        setup_logging(LoggingConfig(file=str(log_file), verbose=1))

        get_logger().info("hidden")
        get_logger().warning("shown")
        for handler in logger.handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "hidden" not in content
        assert "shown" in content

    def test_second_call_is_noop(self, tmp_path: Path):
        config = LoggingConfig(file=str(tmp_path / "bridge.log"))
        setup_logging(config)
        setup_logging(config)
        assert len(logger.handlers) == 1

    def test_no_stderr_when_piped(self, monkeypatch):
        monkeypatch.setattr(sys, "stderr", io.StringIO())
        monkeypatch.delenv(LOG_ENV_VAR, raising=False)
        setup_logging(LoggingConfig())
        assert logger.handlers == []

    def test_unopenable_file_when_piped(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(sys, "stderr", io.StringIO())
        setup_logging(LoggingConfig(file=str(tmp_path / "missing" / "bridge.log")))
        assert logger.handlers == []

    def test_reset_removes_handlers(self, tmp_path: Path):
        setup_logging(LoggingConfig(file=str(tmp_path / "bridge.log")))
        reset_logging()
        assert logger.handlers == []
        assert logger.level == logging.NOTSET


# =============================================================================
# Traffic Summary Tests
# =============================================================================


class TestDescribeMessage:
    def test_prompt_response(self):
        text = describe_message({"jsonrpc": "2.0", "id": 4, "result": {"stopReason": "end_turn"}})
        assert text.startswith("response (id=4) stop_reason=end_turn len=")

    def test_error_response(self):
        text = describe_message({"id": 5, "error": {"code": -32602, "message": "Unknown session"}})
        assert text == "response (id=5) ERROR: {'code': -32602, 'message': 'Unknown session'}"

    def test_session_update(self):
        message = {
            "method": "session/update",
            "params": {"sessionId": "ses_1", "update": {"sessionUpdate": "agent_message_chunk"}},
        }
        assert describe_message(message).startswith("session/update type=agent_message_chunk len=")

    def test_request_preview_truncated(self):
        message = {"id": 1, "method": "session/prompt", "params": {"text": "x" * 500}}
        text = describe_message(message)
        assert text.startswith('session/prompt (id=1) {"text": "xxx')
        assert text.endswith("...")
        assert len(text) < 260
