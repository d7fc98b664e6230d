import asyncio
from pathlib import Path
from typing import Callable

import pytest

from conftest import FakeSocket, FakeTransport, make_envelope
from fortysix.auth.store import CredentialStore
from fortysix.bot.supervisor import (
    EXIT_CONFIG_ERROR,
    EXIT_OK,
    ConnectionState,
    ConnectionSupervisor,
    backoff_delay_ms,
)
from fortysix.config.schema import BotConfig, ReconnectConfig, WhatsAppConfig
from fortysix.errors import TransportError
from fortysix.transport.events import (
    CloseReason,
    ConnectionStatus,
    ConnectionUpdate,
    CredentialsUpdated,
    MessageReceived,
)

OPEN = ConnectionUpdate(status=ConnectionStatus.OPEN)
UNREGISTERED = ConnectionUpdate(status=ConnectionStatus.CONNECTING, registered=False)


def _close(status_code: int | None = 428, reason: str = "") -> ConnectionUpdate:
    return ConnectionUpdate(
        status=ConnectionStatus.CLOSE,
        close_reason=CloseReason(status_code=status_code, reason=reason),
    )


async def until(predicate: Callable[[], object], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.002)

    await asyncio.wait_for(_poll(), timeout)


def test_backoff_sequence() -> None:
    delays = [backoff_delay_ms(n, 2000, 30000) for n in range(1, 18)]
    assert delays[:4] == [2000, 4000, 6000, 8000]
    assert delays[14:] == [30000, 30000, 30000]
    assert backoff_delay_ms(0, 2000, 30000) == 0


def test_logged_out_detection() -> None:
    assert CloseReason(status_code=401).logged_out
    assert CloseReason(reason="logged_out").logged_out
    assert not CloseReason(status_code=428).logged_out
    assert not CloseReason(reason="connection_lost").logged_out


class Harness:
    def __init__(self, tmp_path: Path, *, phone: str = "+1 555 000 1111", use_qr: bool = False):
        self.transport = FakeTransport()
        self.received: list = []
        self.codes: list[tuple[str, str]] = []
        self.store = CredentialStore(tmp_path / "auth")
        self.supervisor = ConnectionSupervisor(
            self.transport,
            self.store,
            whatsapp=WhatsAppConfig(
                auth_dir=str(tmp_path / "auth"), phone_number=phone, use_qr=use_qr
            ),
            reconnect=ReconnectConfig(
                base_delay_ms=50, max_delay_ms=150, pairing_delay_ms=0, restart_delay_ms=20
            ),
            bot=BotConfig(),
            on_message=self._on_message,
            on_pairing_code=lambda code, digits: self.codes.append((code, digits)),
        )
        self.task: asyncio.Task | None = None

    async def _on_message(self, envelope, socket) -> None:
        self.received.append(envelope)

    def launch(self) -> None:
        self.task = asyncio.create_task(self.supervisor.run())

    async def start(self) -> FakeSocket:
        self.launch()
        return await self.transport.wait_for_socket(1)

    async def stop(self) -> int:
        if not self.supervisor.finished:
            self.supervisor.stop()
        return await asyncio.wait_for(self.task, timeout=2.0)


@pytest.mark.asyncio
async def test_open_persists_label_and_sends_welcome(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    socket = await h.start()

    socket.push(OPEN)
    await until(lambda: socket.sent)

    assert h.supervisor.state is ConnectionState.OPEN
    assert h.supervisor.attempts == 0
    label = h.store.session_label()
    assert label and label == h.supervisor.session_label
    assert socket.sent[0]["to"] == "15550001111@s.whatsapp.net"
    assert label in socket.sent[0]["text"]
    assert await h.stop() == EXIT_OK


@pytest.mark.asyncio
async def test_welcome_is_sent_once_across_reconnects(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    first = await h.start()
    first.push(OPEN)
    await until(lambda: first.sent)
    first.push(_close(428))

    second = await h.transport.wait_for_socket(2)
    second.push(OPEN)
    await until(lambda: h.supervisor.state is ConnectionState.OPEN)
    await asyncio.sleep(0.01)

    assert second.sent == []
    await h.stop()


@pytest.mark.asyncio
async def test_logout_is_terminal_and_schedules_nothing(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    socket = await h.start()
    socket.push(OPEN)
    socket.push(_close(401))

    assert await asyncio.wait_for(h.task, timeout=2.0) == EXIT_OK
    assert h.supervisor.state is ConnectionState.LOGGED_OUT
    assert h.supervisor.reconnect_scheduled is False
    await asyncio.sleep(0.1)
    assert len(h.transport.sockets) == 1


@pytest.mark.asyncio
async def test_retryable_close_backs_off_and_open_resets(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    first = await h.start()

    first.push(_close(428))
    await until(lambda: h.supervisor.attempts == 1)
    assert h.supervisor.state is ConnectionState.DISCONNECTED
    assert h.supervisor.last_delay_ms == 50
    assert h.supervisor.reconnect_scheduled is True

    second = await h.transport.wait_for_socket(2)
    second.push(_close(None, "connection_lost"))
    await until(lambda: h.supervisor.attempts == 2)
    assert h.supervisor.last_delay_ms == 100

    third = await h.transport.wait_for_socket(3)
    third.push(OPEN)
    await until(lambda: h.supervisor.state is ConnectionState.OPEN)
    assert h.supervisor.attempts == 0

    third.push(_close(500))
    await until(lambda: h.supervisor.attempts == 1)
    assert h.supervisor.last_delay_ms == 50

    await h.transport.wait_for_socket(4)
    assert first.closed and second.closed and third.closed
    await h.stop()


@pytest.mark.asyncio
async def test_stream_end_without_close_event_reconnects(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    first = await h.start()
    await first.close()

    await h.transport.wait_for_socket(2)
    assert h.supervisor.attempts == 1
    await h.stop()


@pytest.mark.asyncio
async def test_connect_failure_is_retried(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    h.transport.fail_next = TransportError("bridge down")
    h.launch()

    await h.transport.wait_for_socket(1)
    assert len(h.transport.auth_states) == 2
    assert h.supervisor.attempts == 1
    await h.stop()


@pytest.mark.asyncio
async def test_unexpected_setup_error_restarts(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    h.transport.fail_next = ValueError("bad state")
    h.launch()

    await h.transport.wait_for_socket(1)
    assert h.supervisor.attempts == 0
    await h.stop()


@pytest.mark.asyncio
async def test_stop_cancels_pending_reconnect(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    socket = await h.start()
    socket.push(_close(428))
    await until(lambda: h.supervisor.reconnect_scheduled)

    assert await h.stop() == EXIT_OK
    assert h.supervisor.reconnect_scheduled is False
    await asyncio.sleep(0.1)
    assert len(h.transport.sockets) == 1


@pytest.mark.asyncio
async def test_unregistered_connection_requests_one_pairing_code(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    socket = await h.start()

    socket.push(UNREGISTERED)
    socket.push(UNREGISTERED)
    await until(lambda: h.codes)

    assert h.supervisor.state is ConnectionState.AWAITING_PAIRING
    assert socket.pairing_requests == ["15550001111"]
    assert h.codes == [("ABCD-EFGH", "15550001111")]
    assert h.supervisor.pairing_in_flight is True

    socket.push(OPEN)
    await until(lambda: h.supervisor.state is ConnectionState.OPEN)
    assert h.supervisor.pairing_in_flight is False
    await h.stop()


@pytest.mark.asyncio
async def test_pairing_failure_releases_latch_and_retries(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    socket = await h.start()
    socket.pairing_error = TransportError("rate-overlimit")

    socket.push(UNREGISTERED)
    await until(lambda: len(socket.pairing_requests) >= 2)
    assert h.codes == []

    socket.pairing_error = None
    await until(lambda: h.codes)
    assert h.codes == [("ABCD-EFGH", "15550001111")]
    await h.stop()


@pytest.mark.asyncio
async def test_missing_phone_number_is_fatal(tmp_path: Path) -> None:
    h = Harness(tmp_path, phone="")
    socket = await h.start()
    socket.push(UNREGISTERED)

    assert await asyncio.wait_for(h.task, timeout=2.0) == EXIT_CONFIG_ERROR
    assert socket.pairing_requests == []


@pytest.mark.asyncio
async def test_qr_flow_does_not_need_phone(tmp_path: Path) -> None:
    h = Harness(tmp_path, phone="", use_qr=True)
    shown: list[str] = []
    h.supervisor.on_qr = shown.append
    socket = await h.start()

    socket.push(
        ConnectionUpdate(status=ConnectionStatus.CONNECTING, registered=False, qr="2@abc")
    )
    await until(lambda: shown)

    assert shown == ["2@abc"]
    assert h.supervisor.state is ConnectionState.AWAITING_PAIRING
    assert socket.pairing_requests == []
    await h.stop()


@pytest.mark.asyncio
async def test_credentials_are_saved_before_later_events(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    socket = await h.start()

    socket.push(CredentialsUpdated({"registered": True}))
    socket.push(MessageReceived(make_envelope("hello")))
    await until(lambda: h.received)

    assert h.store.load() == {"registered": True}
    assert [e.text for e in h.received] == ["hello"]
    await h.stop()


@pytest.mark.asyncio
async def test_own_and_empty_messages_are_dropped(tmp_path: Path) -> None:
    h = Harness(tmp_path)
    socket = await h.start()

    socket.push(MessageReceived(make_envelope("mine", from_me=True)))
    socket.push(MessageReceived(make_envelope("   ")))
    socket.push(MessageReceived(make_envelope("yours")))
    await until(lambda: h.received)

    assert [e.text for e in h.received] == ["yours"]
    await h.stop()


@pytest.mark.asyncio
async def test_message_callback_errors_do_not_break_pump(tmp_path: Path) -> None:
    h = Harness(tmp_path)

    async def broken(envelope, socket) -> None:
        raise RuntimeError("handler bug")

    h.supervisor.on_message = broken
    socket = await h.start()
    socket.push(MessageReceived(make_envelope("one")))
    socket.push(OPEN)
    await until(lambda: h.supervisor.state is ConnectionState.OPEN)

    await h.stop()
