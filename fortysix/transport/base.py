"""Transport and socket interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from fortysix.transport.events import TransportEvent

PRESENCE_COMPOSING = "composing"
PRESENCE_PAUSED = "paused"


class Socket(ABC):
    """
    One live connection to WhatsApp.

    Sends on a closed socket raise `TransportClosedError` immediately.
    """

    user_id: str | None = None
    user_name: str | None = None

    @abstractmethod
    def events(self) -> AsyncIterator[TransportEvent]:
        """Iterate lifecycle, credential and message events until the socket closes."""

    @abstractmethod
    async def send_text(self, address: str, text: str, quoted_id: str | None = None) -> None:
        """Send a text message, optionally quoting an earlier message."""

    @abstractmethod
    async def send_presence(self, address: str, state: str) -> None:
        """Update chat presence (`composing`, `paused`, ...)."""

    @abstractmethod
    async def request_pairing_code(self, phone_number: str) -> str:
        """Ask WhatsApp for a pairing code for `phone_number` (digits only)."""

    @abstractmethod
    async def close(self) -> None:
        """Tear the socket down."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether the socket has been torn down."""


class Transport(ABC):
    """Factory for sockets."""

    @abstractmethod
    async def connect(self, auth_state: dict[str, Any] | None) -> Socket:
        """Open a socket using stored credentials (None for a fresh login)."""
