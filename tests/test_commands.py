"""Tests for slash command discovery and execution."""

from __future__ import annotations

import json
import re

import pytest

from opencode_acp.commands import (
    BUILTIN_COMMANDS,
    CommandDefinition,
    SlashCommandRunner,
    load_available_commands,
    load_commands,
    parse_slash_command,
)
from opencode_acp.commands.loader import load_config_commands, load_markdown_commands
from opencode_acp.commands.runner import ascending_message_id, split_model
from opencode_acp.errors import ModelResolutionError
from tests.utils import assistant_info, message_with_parts


def write_command(tmp_path, name: str, content: str) -> None:
    command_dir = tmp_path / ".opencode" / "command"
    command_dir.mkdir(parents=True, exist_ok=True)
    (command_dir / f"{name}.md").write_text(content, encoding="utf-8")


def builtin(name: str) -> CommandDefinition:
    return next(c for c in BUILTIN_COMMANDS if c.name == name)


# =============================================================================
# Parsing Tests
# =============================================================================


class TestParseSlashCommand:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("/help", ("help", "")),
            ("  /compact keep the API notes  ", ("compact", "keep the API notes")),
            ("/review src/app.py", ("review", "src/app.py")),
            ("hello /help", None),
            ("/", None),
            ("/usr/bin/env", None),
            ("", None),
        ],
    )
    def test_parse(self, text, expected):
        assert parse_slash_command(text) == expected


class TestSplitModel:
    def test_valid(self):
        assert split_model("anthropic/claude-sonnet") == ("anthropic", "claude-sonnet")

    def test_model_with_slash(self):
        assert split_model("openrouter/meta/llama") == ("openrouter", "meta/llama")

    @pytest.mark.parametrize("value", ["claude", "/model", "provider/", ""])
    def test_invalid(self, value):
        assert split_model(value) is None


class TestAscendingMessageId:
    def test_format(self):
        assert re.fullmatch(r"msg_[0-9a-f]{12}[0-9A-Za-z]{14}", ascending_message_id())

    def test_ids_sort_in_creation_order(self):
        ids = [ascending_message_id() for _ in range(20)]
        prefixes = [i[:16] for i in ids]
        assert prefixes == sorted(prefixes)
        assert len(set(prefixes)) == len(prefixes)


# =============================================================================
# Loader Tests
# =============================================================================


class TestConfigFileComments:
    """Tests for comments in `opencode.json`."""

    def write_config(self, tmp_path, text: str) -> list[CommandDefinition]:
        (tmp_path / "opencode.json").write_text(text, encoding="utf-8")
        return load_config_commands(tmp_path)

    def test_line_and_block_comments(self, tmp_path):
        commands = self.write_config(
            tmp_path,
            '{\n  // a comment\n  "command": {"a": {"description": "A"}}, /* inline */ "theme": "x"\n}',
        )
        assert [c.description for c in commands] == ["A"]

    def test_markers_inside_strings_kept(self, tmp_path):
        commands = self.write_config(
            tmp_path, '{"command": {"a": {"description": "see http://example.com/*x*/"}}}'
        )
        assert commands[0].description == "see http://example.com/*x*/"

    def test_string_ending_in_backslash(self, tmp_path):
        commands = self.write_config(
            tmp_path,
            '{"command": {"x": {"template": "dir C:\\\\", // note\n "description": "d"}}}',
        )
        assert len(commands) == 1
        assert commands[0].template == "dir C:\\"
        assert commands[0].description == "d"


class TestLoadCommands:
    """Tests for command discovery in a project directory."""

    def test_builtins_only(self, tmp_path):
        names = [c.name for c in load_commands(tmp_path)]
        assert names == [c.name for c in BUILTIN_COMMANDS]

    def test_markdown_command(self, tmp_path):
        write_command(
            tmp_path,
            "review",
            "---\ndescription: Review a file\n---\nReview $ARGUMENTS carefully.\n",
        )
        commands = load_markdown_commands(tmp_path)
        assert len(commands) == 1
        review = commands[0]
        assert review.name == "review"
        assert review.description == "Review a file"
        assert review.template == "Review $ARGUMENTS carefully."
        assert review.hint == "arguments"
        assert not review.builtin

    def test_markdown_without_frontmatter(self, tmp_path):
        write_command(tmp_path, "lint", "Run the linter.\n")
        lint = load_markdown_commands(tmp_path)[0]
        assert lint.description == ""
        assert lint.hint is None
        assert lint.template == "Run the linter."

    def test_invalid_frontmatter_skipped(self, tmp_path):
        write_command(tmp_path, "broken", "---\n- just\n- a list\n---\nbody\n")
        write_command(tmp_path, "ok", "body\n")
        assert [c.name for c in load_markdown_commands(tmp_path)] == ["ok"]

    def test_config_commands(self, tmp_path):
        (tmp_path / "opencode.json").write_text(
            '{\n  // project commands\n  "command": {"test": {"description": "Run tests", "template": "Run $ARGUMENTS"}}\n}',
            encoding="utf-8",
        )
        test = next(c for c in load_commands(tmp_path) if c.name == "test")
        assert test.description == "Run tests"
        assert test.hint == "arguments"

    def test_unreadable_config_ignored(self, tmp_path):
        (tmp_path / "opencode.json").write_text("{not json", encoding="utf-8")
        assert len(load_commands(tmp_path)) == len(BUILTIN_COMMANDS)

    def test_custom_overrides_builtin(self, tmp_path):
        write_command(tmp_path, "init", "---\ndescription: Project init\n---\nSet up the repo.\n")
        commands = [c for c in load_commands(tmp_path) if c.name == "init"]
        assert len(commands) == 1
        assert commands[0].description == "Project init"
        assert not commands[0].builtin

    def test_config_wins_over_markdown(self, tmp_path):
        (tmp_path / "opencode.json").write_text(
            json.dumps({"command": {"deploy": {"description": "from config"}}}), encoding="utf-8"
        )
        write_command(tmp_path, "deploy", "---\ndescription: from markdown\n---\nbody\n")
        deploy = [c for c in load_commands(tmp_path) if c.name == "deploy"]
        assert [c.description for c in deploy] == ["from config"]

    def test_available_commands(self, tmp_path):
        available = {c.name: c for c in load_available_commands(tmp_path)}
        assert available["compact"].input is not None
        assert available["help"].input is None
        assert available["help"].description == "Show the help dialog."


# =============================================================================
# Runner Tests
# =============================================================================


@pytest.fixture
def runner(mock_upstream) -> SlashCommandRunner:
    return SlashCommandRunner(mock_upstream, agent="build")


class TestResolveModel:
    """Model lookup order for commands that need one."""

    async def test_session_model_first(self, runner, session, mock_upstream):
        session.model = ("anthropic", "claude")
        assert await runner.resolve_model(session) == ("anthropic", "claude")
        mock_upstream.get_config.assert_not_awaited()

    async def test_configured_model(self, runner, session, mock_upstream):
        mock_upstream.get_config.return_value = {"model": "openai/gpt-4o"}
        assert await runner.resolve_model(session) == ("openai", "gpt-4o")

    async def test_provider_default(self, runner, session, mock_upstream):
        mock_upstream.list_providers.return_value = {
            "providers": [{"id": "openai"}, {"id": "anthropic"}],
            "default": {"anthropic": "claude", "openai": "gpt-4o"},
        }
        assert await runner.resolve_model(session) == ("openai", "gpt-4o")

    async def test_nothing_available(self, runner, session):
        with pytest.raises(ModelResolutionError):
            await runner.resolve_model(session)


class TestBuiltinCommands:
    """Tests for built-in command handlers."""

    async def test_help_lists_commands(self, runner, session):
        available = [builtin("help"), builtin("compact")]
        result = await runner.run(session, builtin("help"), "", available)
        assert result.text.splitlines()[0] == "Available commands:"
        assert "  /help - Show the help dialog." in result.text
        assert "/compact <optional custom summarization instructions>" in result.text
        assert result.message is None

    async def test_compact(self, runner, session, mock_upstream):
        session.model = ("anthropic", "claude")
        result = await runner.run(session, builtin("compact"), "", [])
        mock_upstream.summarize.assert_awaited_once_with(session.session_id, ("anthropic", "claude"))
        assert result.text == "Session compacted."

    async def test_summarize_is_compact(self, runner, session, mock_upstream):
        session.model = ("anthropic", "claude")
        result = await runner.run(session, builtin("summarize"), "", [])
        assert result.text == "Session compacted."
        mock_upstream.summarize.assert_awaited_once()

    async def test_compact_without_model(self, runner, session):
        with pytest.raises(ModelResolutionError):
            await runner.run(session, builtin("compact"), "", [])

    async def test_init(self, runner, session, mock_upstream):
        session.model = ("anthropic", "claude")
        result = await runner.run(session, builtin("init"), "", [])
        args = mock_upstream.init_session.await_args.args
        assert args[0] == session.session_id
        assert args[1].startswith("msg_")
        assert args[2] == ("anthropic", "claude")
        assert result.text.startswith("Initialized AGENTS.md")

    async def test_undo_reverts_last_user_message(self, runner, session, mock_upstream):
        mock_upstream.list_messages.return_value = [
            message_with_parts(assistant_info("msg_u1", role="user")),
            message_with_parts(assistant_info("msg_a1")),
            message_with_parts(assistant_info("msg_u2", role="user")),
            message_with_parts(assistant_info("msg_a2")),
        ]
        result = await runner.run(session, builtin("undo"), "", [])
        mock_upstream.revert.assert_awaited_once_with(session.session_id, "msg_u2")
        assert result.text == "Undid the last message."

    async def test_undo_nothing(self, runner, session, mock_upstream):
        result = await runner.run(session, builtin("undo"), "", [])
        mock_upstream.revert.assert_not_awaited()
        assert result.text == "Nothing to undo."

    async def test_redo(self, runner, session, mock_upstream):
        result = await runner.run(session, builtin("redo"), "", [])
        mock_upstream.unrevert.assert_awaited_once_with(session.session_id)
        assert result.text == "Restored the previously undone message."

    async def test_share(self, runner, session, mock_upstream):
        mock_upstream.share.return_value = {"id": session.session_id, "share": {"url": "https://opncd.ai/s/abc"}}
        result = await runner.run(session, builtin("share"), "", [])
        assert result.text == "Session shared: https://opncd.ai/s/abc"

    async def test_unshare(self, runner, session, mock_upstream):
        result = await runner.run(session, builtin("unshare"), "", [])
        mock_upstream.unshare.assert_awaited_once_with(session.session_id)
        assert result.text == "Session unshared."

    async def test_models(self, runner, session, mock_upstream):
        mock_upstream.list_providers.return_value = {
            "providers": [
                {"id": "anthropic", "name": "Anthropic", "models": {"claude": {"name": "Claude"}}},
            ],
            "default": {"anthropic": "claude"},
        }
        result = await runner.run(session, builtin("models"), "", [])
        assert "Anthropic:" in result.text
        assert "  anthropic/claude - Claude (default)" in result.text

    async def test_models_empty(self, runner, session):
        result = await runner.run(session, builtin("models"), "", [])
        assert result.text == "No models available."


class TestCustomCommands:
    async def test_custom_command_runs_upstream(self, runner, session, mock_upstream):
        message = message_with_parts(assistant_info("msg_cmd"))
        mock_upstream.command.return_value = message
        command = CommandDefinition("review", "Review", template="Review $ARGUMENTS")

        result = await runner.run(session, command, "src/app.py", [command])

        mock_upstream.command.assert_awaited_once_with(
            session.session_id, "review", "src/app.py", model=None, agent="build"
        )
        assert result.message is message
        assert result.text is None
