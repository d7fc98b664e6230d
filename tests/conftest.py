from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import pytest

from fortysix.errors import TransportClosedError
from fortysix.providers.base import LLMProvider, LLMResponse
from fortysix.transport.base import Socket, Transport
from fortysix.transport.events import InboundEnvelope, TransportEvent

BOT_ID = "15550001111:7@s.whatsapp.net"


class FakeSocket(Socket):
    """In-memory socket: tests push events, inspect what was sent."""

    def __init__(self, user_id: str | None = BOT_ID, pairing_code: str = "ABCD-EFGH"):
        self.user_id = user_id
        self.user_name = "Forty Six"
        self.sent: list[dict[str, Any]] = []
        self.presence: list[tuple[str, str]] = []
        self.pairing_requests: list[str] = []
        self.pairing_code = pairing_code
        self.pairing_error: Exception | None = None
        self._queue: asyncio.Queue[TransportEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: TransportEvent) -> None:
        self._queue.put_nowait(event)

    async def events(self) -> AsyncIterator[TransportEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def send_text(self, address: str, text: str, quoted_id: str | None = None) -> None:
        if self._closed:
            raise TransportClosedError("connection closed")
        self.sent.append({"to": address, "text": text, "quoted": quoted_id})

    async def send_presence(self, address: str, state: str) -> None:
        self.presence.append((address, state))

    async def request_pairing_code(self, phone_number: str) -> str:
        self.pairing_requests.append(phone_number)
        if self.pairing_error is not None:
            raise self.pairing_error
        return self.pairing_code

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    @property
    def texts(self) -> list[str]:
        return [m["text"] for m in self.sent]


class FakeTransport(Transport):
    def __init__(self) -> None:
        self.sockets: list[FakeSocket] = []
        self.auth_states: list[dict | None] = []
        self.connected = asyncio.Event()
        self.fail_next: Exception | None = None

    async def connect(self, auth_state: dict | None) -> Socket:
        self.auth_states.append(auth_state)
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        socket = FakeSocket()
        self.sockets.append(socket)
        self.connected.set()
        return socket

    async def wait_for_socket(self, count: int, timeout: float = 2.0) -> FakeSocket:
        async def _wait() -> FakeSocket:
            while len(self.sockets) < count:
                self.connected.clear()
                await self.connected.wait()
            return self.sockets[count - 1]

        return await asyncio.wait_for(_wait(), timeout)


class StubProvider(LLMProvider):
    """Returns canned replies (or raises) and records every request."""

    def __init__(self, replies: list[str] | None = None, error: Exception | None = None):
        super().__init__()
        self.replies = list(replies or ["ok"])
        self.error = error
        self.calls: list[list[dict[str, Any]]] = []

    async def chat(self, messages, model=None, max_tokens=1024, temperature=0.7) -> LLMResponse:
        self.calls.append([dict(m) for m in messages])
        if self.error is not None:
            raise self.error
        content = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return LLMResponse(content=content)

    def get_default_model(self) -> str:
        return "stub"


def make_envelope(
    text: str,
    chat_id: str = "15552223333@s.whatsapp.net",
    sender_id: str | None = None,
    message_id: str = "MSG1",
    from_me: bool = False,
) -> InboundEnvelope:
    return InboundEnvelope(
        message_id=message_id,
        chat_id=chat_id,
        sender_id=sender_id or chat_id,
        text=text,
        from_me=from_me,
    )


@pytest.fixture
def fake_socket() -> FakeSocket:
    return FakeSocket()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()
