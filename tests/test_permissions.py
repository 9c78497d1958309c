"""Tests for tool permission arbitration."""

from __future__ import annotations

import pytest

from opencode_acp.session import PermissionMode
from opencode_acp.session.permissions import PLAN_MODE_BLOCKED, denied_message
from opencode_acp.upstream.types import ToolStatus
from tests.utils import SESSION_ID, permission_response, sent_updates, tool_part, update_kinds


def _failed_text(update) -> str:
    return update.content[0].content.text


# =============================================================================
# PermissionMode Tests
# =============================================================================


class TestPermissionMode:
    """Tests for mode parsing."""

    @pytest.mark.parametrize(
        "mode_id,expected",
        [
            ("default", PermissionMode.DEFAULT),
            ("acceptEdits", PermissionMode.ACCEPT_EDITS),
            ("bypassPermissions", PermissionMode.BYPASS_PERMISSIONS),
            ("plan", PermissionMode.PLAN),
        ],
    )
    def test_parse_known(self, mode_id, expected):
        assert PermissionMode.parse(mode_id) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            PermissionMode.parse("yolo")


# =============================================================================
# ToolPermissionArbiter Tests
# =============================================================================


class TestArbiterDefaultMode:
    """The default mode asks the client once per call."""

    async def test_allowed_call_proceeds(self, arbiter, session, mock_conn):
        part = tool_part("pending", tool="read_file", input={"path": "a.txt"})

        assert await arbiter.on_pending(session, part) is True

        assert update_kinds(mock_conn) == ["tool_call"]
        start = sent_updates(mock_conn)[0]
        assert start.tool_call_id == "call_1"
        assert start.status == "pending"
        assert start.kind == "read"
        assert session.tool_calls["call_1"].status == ToolStatus.PENDING

    async def test_permission_request_shape(self, arbiter, session, mock_conn):
        await arbiter.on_pending(session, tool_part("pending", tool="execute_bash"))

        mock_conn.request_permission.assert_awaited_once()
        kwargs = mock_conn.request_permission.await_args.kwargs
        assert kwargs["session_id"] == SESSION_ID
        assert kwargs["tool_call"].title == "Allow agent to run tool: execute_bash?"
        assert [o.option_id for o in kwargs["options"]] == ["allow_once", "reject_once"]

    async def test_denied_call_is_blocked(self, arbiter, session, mock_conn):
        mock_conn.request_permission.return_value = permission_response("reject_once")
        part = tool_part("pending", tool="write_file")

        assert await arbiter.on_pending(session, part) is False

        assert update_kinds(mock_conn) == ["tool_call", "tool_call_update"]
        failed = sent_updates(mock_conn)[1]
        assert failed.status == "failed"
        assert _failed_text(failed) == denied_message("write_file")
        assert session.tool_calls["call_1"].blocked

    async def test_cancelled_outcome_is_denial(self, arbiter, session, mock_conn):
        mock_conn.request_permission.return_value = permission_response(None, outcome="cancelled")

        assert await arbiter.on_pending(session, tool_part("pending")) is False
        assert session.tool_calls["call_1"].blocked

    async def test_request_failure_is_denial(self, arbiter, session, mock_conn):
        mock_conn.request_permission.side_effect = ConnectionError("client gone")

        assert await arbiter.on_pending(session, tool_part("pending")) is False
        assert update_kinds(mock_conn) == ["tool_call", "tool_call_update"]

    async def test_asked_only_once(self, arbiter, session, mock_conn):
        part = tool_part("pending")

        assert await arbiter.on_pending(session, part) is True
        assert await arbiter.on_pending(session, part) is True

        mock_conn.request_permission.assert_awaited_once()
        assert update_kinds(mock_conn) == ["tool_call"]

    async def test_denied_call_stays_blocked(self, arbiter, session, mock_conn):
        mock_conn.request_permission.return_value = permission_response("reject_once")
        part = tool_part("pending")

        await arbiter.on_pending(session, part)
        assert await arbiter.on_pending(session, part) is False
        mock_conn.request_permission.assert_awaited_once()


class TestArbiterOtherModes:
    """Modes that decide without asking."""

    @pytest.mark.parametrize("mode", [PermissionMode.BYPASS_PERMISSIONS, PermissionMode.ACCEPT_EDITS])
    async def test_auto_allow(self, arbiter, session, mock_conn, mode):
        session.permission_mode = mode

        assert await arbiter.on_pending(session, tool_part("pending", tool="write_file")) is True

        mock_conn.request_permission.assert_not_awaited()
        assert update_kinds(mock_conn) == ["tool_call"]

    async def test_plan_mode_blocks(self, arbiter, session, mock_conn):
        session.permission_mode = PermissionMode.PLAN

        assert await arbiter.on_pending(session, tool_part("pending")) is False

        mock_conn.request_permission.assert_not_awaited()
        assert update_kinds(mock_conn) == ["tool_call_update"]
        failed = sent_updates(mock_conn)[0]
        assert failed.status == "failed"
        assert _failed_text(failed) == PLAN_MODE_BLOCKED
        record = session.tool_calls["call_1"]
        assert record.blocked
        assert record.status is None
