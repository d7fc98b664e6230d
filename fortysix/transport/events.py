"""Typed events emitted by a transport socket."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from fortysix.utils.helpers import is_group_address

# WhatsApp multi-device "logged out" disconnect.
LOGGED_OUT_STATUS = 401
LOGGED_OUT_REASON = "logged_out"


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


@dataclass(frozen=True)
class CloseReason:
    """Why a connection closed."""

    status_code: int | None = None
    reason: str = ""
    message: str = ""

    @property
    def logged_out(self) -> bool:
        return self.status_code == LOGGED_OUT_STATUS or self.reason == LOGGED_OUT_REASON

    def __str__(self) -> str:
        parts = [str(self.status_code) if self.status_code is not None else "", self.reason]
        text = " ".join(p for p in parts if p) or "unknown"
        return f"{text}: {self.message}" if self.message else text


@dataclass
class InboundEnvelope:
    """A text message received from WhatsApp."""

    message_id: str
    chat_id: str
    sender_id: str
    text: str
    from_me: bool = False
    timestamp: datetime = field(default_factory=datetime.now)
    push_name: str = ""

    @property
    def is_group(self) -> bool:
        return is_group_address(self.chat_id)

    @property
    def session_key(self) -> str:
        """Participant in groups, the chat itself in direct chats."""
        return self.sender_id if self.is_group else self.chat_id


@dataclass
class ConnectionUpdate:
    status: ConnectionStatus
    registered: bool = True
    close_reason: CloseReason | None = None
    qr: str | None = None


@dataclass
class CredentialsUpdated:
    state: dict[str, Any]


@dataclass
class MessageReceived:
    envelope: InboundEnvelope


TransportEvent = Union[ConnectionUpdate, CredentialsUpdated, MessageReceived]
