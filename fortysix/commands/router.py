"""Command parsing and dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

from loguru import logger

from fortysix.transport.base import Socket
from fortysix.transport.events import InboundEnvelope

if TYPE_CHECKING:
    from fortysix.auth.store import CredentialStore
    from fortysix.config.schema import Config
    from fortysix.session.manager import SessionManager

COMMAND_FAILED_TEXT = "❌ Command failed. Please try again."


@dataclass(frozen=True)
class CommandInvocation:
    keyword: str
    args: list[str] = field(default_factory=list)

    @property
    def arg_text(self) -> str:
        return " ".join(self.args)


def parse_command(text: str, prefix: str) -> CommandInvocation | None:
    """
    Parse `<prefix><keyword> [args...]`.

    The prefix alone (or followed only by whitespace) is not a command.
    The keyword is case-folded; arguments keep their case.
    """
    if not prefix or not text or not text.startswith(prefix):
        return None
    tokens = text[len(prefix):].split()
    if not tokens:
        return None
    return CommandInvocation(keyword=tokens[0].casefold(), args=tokens[1:])


@dataclass
class CommandContext:
    """Everything a command handler may touch."""

    envelope: InboundEnvelope
    socket: Socket
    invocation: CommandInvocation
    config: "Config"
    sessions: "SessionManager"
    credentials: "CredentialStore"
    router: "CommandRouter"
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def prefix(self) -> str:
        return self.config.bot.command_prefix

    async def reply(self, text: str) -> None:
        await self.socket.send_text(
            self.envelope.chat_id, text, quoted_id=self.envelope.message_id or None
        )


CommandHandler = Callable[[CommandContext], Awaitable[str | None]]


@dataclass
class _Command:
    name: str
    handler: CommandHandler
    description: str


class CommandRouter:
    """Keyword -> handler registry. Never lets a handler error escape."""

    def __init__(self) -> None:
        self._commands: dict[str, _Command] = {}

    def register(self, name: str, handler: CommandHandler, description: str = "") -> None:
        self._commands[name.casefold()] = _Command(name.casefold(), handler, description)

    def command(self, name: str, description: str = "") -> Callable[[CommandHandler], CommandHandler]:
        """Decorator form of `register`."""

        def decorator(handler: CommandHandler) -> CommandHandler:
            self.register(name, handler, description)
            return handler

        return decorator

    def has(self, keyword: str) -> bool:
        return keyword.casefold() in self._commands

    def describe(self) -> list[tuple[str, str]]:
        """(name, description) pairs in registration order."""
        return [(c.name, c.description) for c in self._commands.values()]

    async def build_reply(self, ctx: CommandContext) -> str | None:
        """Run the handler for `ctx.invocation` and return its reply text."""
        keyword = ctx.invocation.keyword
        command = self._commands.get(keyword)
        if command is None:
            return (
                f"❓ Unknown command: {ctx.prefix}{keyword}\n"
                f"Type {ctx.prefix}help for available commands."
            )
        try:
            return await command.handler(ctx)
        except Exception as e:
            logger.exception(f"Command {keyword} failed: {e}")
            return COMMAND_FAILED_TEXT

    async def dispatch(self, ctx: CommandContext) -> None:
        """Build the reply and send it. Errors are logged, never raised."""
        reply = await self.build_reply(ctx)
        if not reply:
            return
        try:
            await ctx.reply(reply)
            logger.info(f"Sent reply for {ctx.prefix}{ctx.invocation.keyword}")
        except Exception as e:
            logger.error(f"Failed to send reply for {ctx.prefix}{ctx.invocation.keyword}: {e}")
