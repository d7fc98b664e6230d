"""Chat commands."""

from fortysix.commands.builtin import register_builtin_commands
from fortysix.commands.router import CommandContext, CommandInvocation, CommandRouter, parse_command

__all__ = [
    "CommandContext",
    "CommandInvocation",
    "CommandRouter",
    "parse_command",
    "register_builtin_commands",
]
