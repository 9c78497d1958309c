"""Slash commands: discovery from the project and execution."""

from opencode_acp.commands.loader import (
    BUILTIN_COMMANDS,
    CommandDefinition,
    load_available_commands,
    load_commands,
)
from opencode_acp.commands.runner import (
    CommandResult,
    SlashCommandRunner,
    parse_slash_command,
)

__all__ = [
    "BUILTIN_COMMANDS",
    "CommandDefinition",
    "CommandResult",
    "SlashCommandRunner",
    "load_available_commands",
    "load_commands",
    "parse_slash_command",
]
