"""Assembles the bot from configuration."""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from fortysix.ai.gate import QueryGate
from fortysix.auth.store import CredentialStore
from fortysix.bot.dispatcher import KeyedDispatcher
from fortysix.bot.handler import MessageHandler
from fortysix.bot.supervisor import ConnectionSupervisor, PairingCallback, QRCallback
from fortysix.commands.builtin import register_builtin_commands
from fortysix.commands.router import CommandRouter
from fortysix.config.schema import Config
from fortysix.errors import ConfigurationError
from fortysix.providers.base import LLMProvider
from fortysix.providers.groq import GroqProvider
from fortysix.session.manager import SessionManager
from fortysix.transport.base import Socket, Transport
from fortysix.transport.bridge import BridgeTransport
from fortysix.transport.events import InboundEnvelope


class FortySixBot:
    """
    The running bot.

    Owns one of each component; nothing here is process-global.
    """

    def __init__(
        self,
        config: Config,
        transport: Transport | None = None,
        provider: LLMProvider | None = None,
        on_pairing_code: PairingCallback | None = None,
        on_qr: QRCallback | None = None,
    ):
        missing = config.missing_settings()
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

        self.config = config
        self.started_at = datetime.now()
        self.credentials = CredentialStore(config.whatsapp.auth_path)
        self.sessions = SessionManager(max_turns=config.ai.max_turns)
        self.provider = provider or GroqProvider(
            api_key=config.ai.api_key,
            api_base=config.ai.api_base,
            default_model=config.ai.model,
            timeout_s=config.ai.timeout_s,
        )
        self.router = register_builtin_commands(CommandRouter())
        self.gate = QueryGate(
            config.ai,
            self.sessions,
            self.provider,
            system_prompt=config.ai.load_system_prompt(),
        )
        self.handler = MessageHandler(
            config,
            self.router,
            self.gate,
            self.sessions,
            self.credentials,
            started_at=self.started_at,
        )
        self.dispatcher = KeyedDispatcher()
        self.supervisor = ConnectionSupervisor(
            transport or BridgeTransport(config.whatsapp.bridge_url),
            self.credentials,
            whatsapp=config.whatsapp,
            reconnect=config.reconnect,
            bot=config.bot,
            on_message=self._on_message,
            on_pairing_code=on_pairing_code,
            on_qr=on_qr,
        )

    async def _on_message(self, envelope: InboundEnvelope, socket: Socket) -> None:
        self.dispatcher.submit(
            envelope.session_key, lambda: self.handler.handle(envelope, socket)
        )

    async def run(self) -> int:
        """Run until logout or stop(); returns the exit code."""
        logger.info(f"🤖 {self.config.bot.name} starting (model {self.config.ai.model})")
        try:
            return await self.supervisor.run()
        finally:
            await self.dispatcher.close()
            await self.provider.close()

    def stop(self) -> None:
        self.supervisor.stop()
