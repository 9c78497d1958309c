"""Slash command discovery.

Built-in commands are always offered. Project commands come from the
`command` map in `<cwd>/opencode.json` and from markdown files under
`<cwd>/.opencode/command/`, each with optional YAML frontmatter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import commentjson
import yaml
from acp.schema import AvailableCommand

from opencode_acp.logging import get_logger

_log = get_logger("commands.loader")

ARGUMENTS_PLACEHOLDER = "$ARGUMENTS"

# YAML frontmatter pattern: starts with ---, ends with ---
_FRONTMATTER_PATTERN = re.compile(
    r"^---\s*\n(.*?)\n---\s*\n?(.*)$",
    re.DOTALL,
)


@dataclass
class CommandDefinition:
    """A slash command offered to the ACP client."""

    name: str
    description: str = ""
    hint: str | None = None
    template: str | None = None  # None for built-ins
    builtin: bool = False

    def to_available_command(self) -> AvailableCommand:
        return AvailableCommand(
            name=self.name,
            description=self.description,
            input={"hint": self.hint} if self.hint else None,
        )


_SUMMARIZE_HINT = "<optional custom summarization instructions>"

BUILTIN_COMMANDS: tuple[CommandDefinition, ...] = (
    CommandDefinition("compact", "Compact the current session.", _SUMMARIZE_HINT, builtin=True),
    CommandDefinition("summarize", "Alias for /compact", _SUMMARIZE_HINT, builtin=True),
    CommandDefinition("help", "Show the help dialog.", builtin=True),
    CommandDefinition("init", "Create or update AGENTS.md file.", builtin=True),
    CommandDefinition("models", "List available models.", builtin=True),
    CommandDefinition("redo", "Redo a previously undone message.", builtin=True),
    CommandDefinition("undo", "Undo last message in the conversation.", builtin=True),
    CommandDefinition("share", "Share current session.", builtin=True),
    CommandDefinition("unshare", "Unshare current session.", builtin=True),
)


def _parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split markdown into (frontmatter, body). Missing frontmatter is allowed."""
    match = _FRONTMATTER_PATTERN.match(content)
    if not match:
        return {}, content.strip()

    try:
        frontmatter = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in frontmatter: {e}") from e
    if frontmatter is None:
        frontmatter = {}
    if not isinstance(frontmatter, dict):
        raise ValueError("Frontmatter must be a YAML mapping")
    return frontmatter, match.group(2).strip()


def _hint_for(template: str | None) -> str | None:
    return "arguments" if template and ARGUMENTS_PLACEHOLDER in template else None


def load_config_commands(cwd: str | Path) -> list[CommandDefinition]:
    """Commands from the `command` map of `<cwd>/opencode.json`."""
    config_path = Path(cwd) / "opencode.json"
    if not config_path.exists():
        return []

    try:
        config = commentjson.loads(config_path.read_text(encoding="utf-8"))
    except Exception as e:  # commentjson lets some lark parse errors through
        _log.warning("Error reading %s: %s", config_path, e)
        return []

    commands = config.get("command") if isinstance(config, dict) else None
    if not isinstance(commands, dict):
        return []

    result = []
    for name, details in commands.items():
        details = details if isinstance(details, dict) else {}
        template = details.get("template")
        result.append(
            CommandDefinition(
                name=str(name),
                description=str(details.get("description") or ""),
                hint=_hint_for(template if isinstance(template, str) else None),
                template=template if isinstance(template, str) else None,
            )
        )
    return result


def load_markdown_commands(cwd: str | Path) -> list[CommandDefinition]:
    """Commands from `<cwd>/.opencode/command/*.md`, sorted by name."""
    command_dir = Path(cwd) / ".opencode" / "command"
    if not command_dir.is_dir():
        return []

    result = []
    for path in sorted(command_dir.glob("*.md")):
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            _log.warning("Error reading %s: %s", path, e)
            continue
        try:
            frontmatter, body = _parse_frontmatter(content)
        except ValueError as e:
            _log.warning("Error parsing %s: %s", path, e)
            continue
        result.append(
            CommandDefinition(
                name=path.stem,
                description=str(frontmatter.get("description") or ""),
                hint=_hint_for(body),
                template=body,
            )
        )
    return result


def load_commands(cwd: str | Path) -> list[CommandDefinition]:
    """All commands for a project; custom commands replace same-named built-ins."""
    custom: dict[str, CommandDefinition] = {}
    for command in [*load_config_commands(cwd), *load_markdown_commands(cwd)]:
        # First definition of a name wins
        custom.setdefault(command.name, command)

    builtins = [c for c in BUILTIN_COMMANDS if c.name not in custom]
    return [*builtins, *custom.values()]


def load_available_commands(cwd: str | Path) -> list[AvailableCommand]:
    return [command.to_available_command() for command in load_commands(cwd)]
