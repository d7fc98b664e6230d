"""Connection supervisor: owns the WhatsApp socket lifecycle."""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

from loguru import logger

from fortysix.auth.store import CredentialStore
from fortysix.config.schema import BotConfig, ReconnectConfig, WhatsAppConfig
from fortysix.errors import TransportError
from fortysix.transport.base import Socket, Transport
from fortysix.transport.events import (
    CloseReason,
    ConnectionStatus,
    ConnectionUpdate,
    CredentialsUpdated,
    InboundEnvelope,
    MessageReceived,
    TransportEvent,
)
from fortysix.utils.helpers import address_number, bare_address, phone_digits

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1

MessageCallback = Callable[[InboundEnvelope, Socket], Awaitable[None]]
PairingCallback = Callable[[str, str], None]
QRCallback = Callable[[str], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting-pairing"
    OPEN = "open"
    LOGGED_OUT = "logged-out"


def backoff_delay_ms(attempt: int, base_ms: int, max_ms: int) -> int:
    """Linear backoff capped at `max_ms`: 1 -> base, 2 -> 2*base, ..."""
    return min(max(0, attempt) * base_ms, max_ms)


class ConnectionSupervisor:
    """
    Finite-state owner of the transport connection.

    Drives disconnected -> connecting -> (awaiting-pairing ->) open and back,
    reacting to typed transport events. Retryable closes schedule a single
    reconnect with backoff; a logout is terminal.

    `run()` returns the process exit code.
    """

    def __init__(
        self,
        transport: Transport,
        credentials: CredentialStore,
        *,
        whatsapp: WhatsAppConfig,
        reconnect: ReconnectConfig,
        bot: BotConfig,
        on_message: MessageCallback,
        on_pairing_code: PairingCallback | None = None,
        on_qr: QRCallback | None = None,
    ):
        self.transport = transport
        self.credentials = credentials
        self.whatsapp = whatsapp
        self.reconnect = reconnect
        self.bot = bot
        self.on_message = on_message
        self.on_pairing_code = on_pairing_code
        self.on_qr = on_qr

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self.last_delay_ms: int | None = None
        self.pairing_in_flight = False
        self.socket: Socket | None = None
        self.session_label: str | None = None

        self._running = False
        self._welcome_sent = False
        self._exit: asyncio.Future[int] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._pump_task: asyncio.Task | None = None
        self._pairing_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None and not self._reconnect_handle.cancelled()

    @property
    def finished(self) -> bool:
        return self._exit is not None and self._exit.done()

    @property
    def exit_code(self) -> int | None:
        return self._exit.result() if self.finished else None

    def _exit_future(self) -> asyncio.Future[int]:
        if self._exit is None:
            self._exit = asyncio.get_running_loop().create_future()
        return self._exit

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            logger.debug(f"Connection state {self.state.value} -> {state.value}")
            self.state = state

    async def run(self) -> int:
        """Connect and keep the connection alive until logout or stop()."""
        exit_future = self._exit_future()
        self._running = True

        if self.credentials.exists():
            logger.info("✓ Found existing session, connecting...")
        else:
            logger.info("No session found, will request a pairing code...")

        self._spawn(self._start())
        try:
            return await exit_future
        finally:
            await self._teardown()

    def stop(self, exit_code: int = EXIT_OK) -> None:
        """Request a graceful shutdown."""
        logger.info("Shutting down gracefully...")
        self._finish(exit_code)

    def _finish(self, exit_code: int) -> None:
        self._running = False
        self._cancel_reconnect()
        exit_future = self._exit_future()
        if not exit_future.done():
            exit_future.set_result(exit_code)

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _start(self) -> None:
        """One connection attempt."""
        self._reconnect_handle = None
        if not self._running:
            return

        self._set_state(ConnectionState.CONNECTING)
        try:
            auth_state = self.credentials.load()
            socket = await self.transport.connect(auth_state)
        except asyncio.CancelledError:
            raise
        except (TransportError, OSError) as e:
            logger.warning(f"Connection attempt failed: {e}")
            self._on_closed(CloseReason(reason="connect_failed", message=str(e)))
            return
        except Exception as e:
            logger.exception(f"Unexpected error during setup: {e}")
            self._set_state(ConnectionState.DISCONNECTED)
            delay = self.reconnect.restart_delay_ms
            logger.info(f"🔄 Restarting in {delay / 1000:g}s...")
            self._schedule_start(delay)
            return

        if not self._running:
            await socket.close()
            return
        self.socket = socket
        self._pump_task = self._spawn(self._pump(socket))

    async def _pump(self, socket: Socket) -> None:
        """Feed socket events into the state machine, in order."""
        try:
            async for event in socket.events():
                await self.handle_event(event)
                if socket is not self.socket:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Transport event stream failed: {e}")
            if socket is self.socket:
                self._on_closed(CloseReason(reason="stream_error", message=str(e)))
            return

        if socket is self.socket:
            self._on_closed(CloseReason(reason="connection_lost"))

    async def handle_event(self, event: TransportEvent) -> None:
        """Apply one transport event. Never raises."""
        try:
            if isinstance(event, CredentialsUpdated):
                await self._on_credentials(event)
            elif isinstance(event, ConnectionUpdate):
                await self._on_connection_update(event)
            elif isinstance(event, MessageReceived):
                await self._on_message(event.envelope)
            else:
                logger.debug(f"Ignoring unknown transport event {event!r}")
        except Exception as e:
            logger.exception(f"Error handling transport event {type(event).__name__}: {e}")

    async def _on_credentials(self, event: CredentialsUpdated) -> None:
        saved = await asyncio.to_thread(self.credentials.save, event.state)
        if not saved:
            logger.warning("Credentials not persisted; continuing with in-memory session")

    async def _on_connection_update(self, update: ConnectionUpdate) -> None:
        if update.status is ConnectionStatus.CONNECTING:
            self._set_state(ConnectionState.CONNECTING)
            if update.qr or not update.registered:
                self._begin_pairing(update.qr)
        elif update.status is ConnectionStatus.OPEN:
            await self._on_open()
        elif update.status is ConnectionStatus.CLOSE:
            self._on_closed(update.close_reason or CloseReason())

    async def _on_message(self, envelope: InboundEnvelope) -> None:
        if self.socket is None or envelope.from_me or not envelope.text.strip():
            return
        await self.on_message(envelope, self.socket)

    def _begin_pairing(self, qr: str | None = None) -> None:
        self._set_state(ConnectionState.AWAITING_PAIRING)

        if self.whatsapp.use_qr:
            if qr:
                if self.on_qr:
                    self.on_qr(qr)
                else:
                    logger.info(f"Scan this QR payload with WhatsApp: {qr}")
            return

        digits = phone_digits(self.whatsapp.phone_number)
        if not digits:
            logger.error(
                "Phone number is not set! Set whatsapp.phone_number (or PHONE_NUMBER) "
                "to your number, digits only, and restart."
            )
            self._finish(EXIT_CONFIG_ERROR)
            return

        if self.pairing_in_flight:
            return
        self.pairing_in_flight = True
        self._pairing_task = self._spawn(self._request_pairing_code(self.socket, digits))

    async def _request_pairing_code(self, socket: Socket | None, digits: str) -> None:
        # Give the socket time to finish its handshake first.
        await asyncio.sleep(self.reconnect.pairing_delay_ms / 1000)
        if socket is None or socket is not self.socket:
            return

        logger.info(f"📲 Requesting pairing code for +{digits}...")
        try:
            code = await socket.request_pairing_code(digits)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.pairing_in_flight = False
            logger.error(f"Pairing code request failed: {e}")
            if (
                self._running
                and socket is self.socket
                and not socket.closed
                and self.state is ConnectionState.AWAITING_PAIRING
            ):
                logger.info("Retrying pairing code request...")
                self._begin_pairing()
            return

        if self.on_pairing_code:
            self.on_pairing_code(code, digits)
        else:
            logger.info(f"📱 PAIRING CODE: {code}")
            logger.info(
                "Open WhatsApp > Settings > Linked Devices > Link a Device > "
                f"Link with phone number instead, and enter {code}"
            )

    def _cancel_pairing(self) -> None:
        self.pairing_in_flight = False
        task, self._pairing_task = self._pairing_task, None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _on_open(self) -> None:
        self._set_state(ConnectionState.OPEN)
        self.attempts = 0
        self.last_delay_ms = None
        self._cancel_pairing()

        self.session_label = await asyncio.to_thread(self.credentials.ensure_session_label)
        user_id = self.socket.user_id if self.socket else None
        logger.info(f"✅ {self.bot.name} CONNECTED!")
        logger.info(f"📱 Number: {address_number(user_id or '') or 'unknown'}")
        logger.info(f"🔑 Session ID: {self.session_label}")

        if self.bot.send_welcome and not self._welcome_sent:
            await self._send_welcome()
        logger.info("💬 Waiting for messages...")

    async def _send_welcome(self) -> None:
        socket = self.socket
        if socket is None or not socket.user_id:
            return
        text = (
            f"✅ *{self.bot.name} Online!*\n\n"
            f"🔑 Session: `{self.session_label}`\n"
            f"📱 Number: {address_number(socket.user_id)}\n"
            f"⏰ Connected: {datetime.now():%Y-%m-%d %H:%M:%S}\n\n"
            f"Type {self.bot.command_prefix}help for commands"
        )
        try:
            await socket.send_text(bare_address(socket.user_id), text)
            self._welcome_sent = True
        except Exception as e:
            logger.warning(f"Could not send welcome message: {e}")

    def _on_closed(self, reason: CloseReason) -> None:
        self._cancel_pairing()
        socket, self.socket = self.socket, None
        if socket is not None:
            self._spawn(self._close_socket(socket))

        if reason.logged_out:
            self._set_state(ConnectionState.LOGGED_OUT)
            logger.error("❌ Device logged out!")
            logger.error(
                f"Delete the '{self.whatsapp.auth_path}' folder and restart to pair again."
            )
            self._finish(EXIT_OK)
            return

        self._set_state(ConnectionState.DISCONNECTED)
        if not self._running:
            return

        self.attempts += 1
        delay = backoff_delay_ms(
            self.attempts, self.reconnect.base_delay_ms, self.reconnect.max_delay_ms
        )
        self.last_delay_ms = delay
        logger.warning(f"⚠️ Connection closed. Reason: {reason}")
        logger.info(f"🔄 Reconnecting in {delay / 1000:g}s... (Attempt {self.attempts})")
        self._schedule_start(delay)

    def _schedule_start(self, delay_ms: int) -> None:
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(
            delay_ms / 1000, lambda: self._spawn(self._start())
        )

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    @staticmethod
    async def _close_socket(socket: Socket) -> None:
        try:
            await socket.close()
        except Exception as e:
            logger.debug(f"Error closing socket: {e}")

    async def _teardown(self) -> None:
        self._running = False
        self._cancel_reconnect()
        self._cancel_pairing()
        socket, self.socket = self.socket, None
        if socket is not None:
            await self._close_socket(socket)
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
