"""WhatsApp transport boundary."""

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

__all__ = [
    "CloseReason",
    "ConnectionStatus",
    "ConnectionUpdate",
    "CredentialsUpdated",
    "InboundEnvelope",
    "MessageReceived",
    "Socket",
    "Transport",
    "TransportEvent",
]
