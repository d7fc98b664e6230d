"""Bot runtime: supervisor, dispatch and message handling."""

from fortysix.bot.app import FortySixBot
from fortysix.bot.dispatcher import KeyedDispatcher
from fortysix.bot.handler import MessageHandler
from fortysix.bot.supervisor import ConnectionState, ConnectionSupervisor, backoff_delay_ms

__all__ = [
    "ConnectionState",
    "ConnectionSupervisor",
    "FortySixBot",
    "KeyedDispatcher",
    "MessageHandler",
    "backoff_delay_ms",
]
