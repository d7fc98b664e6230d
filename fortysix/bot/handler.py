"""Inbound message handling: commands first, then the AI gate."""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from fortysix.ai.gate import QueryGate
from fortysix.auth.store import CredentialStore
from fortysix.commands.router import CommandContext, CommandRouter, parse_command
from fortysix.config.schema import Config
from fortysix.session.manager import SessionManager
from fortysix.transport.base import Socket
from fortysix.transport.events import InboundEnvelope
from fortysix.utils.helpers import address_number, preview

GENERIC_FAILURE_TEXT = "❌ Sorry, something went wrong. Please try again."


class MessageHandler:
    """Routes one inbound message. Errors stop here."""

    def __init__(
        self,
        config: Config,
        router: CommandRouter,
        gate: QueryGate,
        sessions: SessionManager,
        credentials: CredentialStore,
        started_at: datetime | None = None,
    ):
        self.config = config
        self.router = router
        self.gate = gate
        self.sessions = sessions
        self.credentials = credentials
        self.started_at = started_at or datetime.now()

    async def handle(self, envelope: InboundEnvelope, socket: Socket) -> None:
        if envelope.from_me:
            return
        text = (envelope.text or "").strip()
        if not text:
            return

        kind = "GROUP" if envelope.is_group else "DM"
        logger.info(f"📩 [{kind}] {address_number(envelope.sender_id)}: {preview(text)}")

        try:
            invocation = parse_command(text, self.config.bot.command_prefix)
            if invocation is not None:
                await self.router.dispatch(
                    CommandContext(
                        envelope=envelope,
                        socket=socket,
                        invocation=invocation,
                        config=self.config,
                        sessions=self.sessions,
                        credentials=self.credentials,
                        router=self.router,
                        started_at=self.started_at,
                    )
                )
                return
            await self.gate.handle(envelope, socket)
        except Exception as e:
            logger.exception(f"Error handling message from {envelope.sender_id}: {e}")
            try:
                await socket.send_text(envelope.chat_id, GENERIC_FAILURE_TEXT)
            except Exception as send_error:
                logger.debug(f"Could not report failure to {envelope.chat_id}: {send_error}")
