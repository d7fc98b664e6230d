"""Session management for conversation history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"


@dataclass
class Session:
    """
    A conversation session for one identity.

    Messages are kept in (user, assistant) pairs so that trimming from the
    front never leaves an assistant turn without its question.
    """

    key: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def add_message(self, role: str, content: str) -> None:
        """Add a message to the session."""
        self.messages.append(
            {
                "role": role,
                "content": content,
                "timestamp": datetime.now().isoformat(),
            }
        )
        self.updated_at = datetime.now()

    def add_exchange(self, user_content: str, assistant_content: str, max_turns: int) -> int:
        """
        Record one exchange and evict the oldest pairs past `max_turns`.

        Returns the number of evicted pairs.
        """
        self.add_message(ROLE_USER, user_content)
        self.add_message(ROLE_ASSISTANT, assistant_content)

        evicted = 0
        limit = max(1, max_turns) * 2
        while len(self.messages) > limit:
            del self.messages[:2]
            evicted += 1
        return evicted

    def get_history(self, max_messages: int | None = None) -> list[dict[str, str]]:
        """Get messages in LLM format (role/content only)."""
        messages = self.messages if max_messages is None else self.messages[-max_messages:]
        return [{"role": m["role"], "content": m.get("content", "")} for m in messages]

    @property
    def exchange_count(self) -> int:
        return len(self.messages) // 2

    def clear(self) -> None:
        """Clear all messages."""
        self.messages = []
        self.updated_at = datetime.now()


class SessionManager:
    """
    Manages in-memory conversation sessions.

    Keyed by identity: the participant address in groups and the chat
    address in direct chats. Sessions do not survive a restart.

    Callers are expected to serialize work per key (see
    `fortysix.bot.dispatcher.KeyedDispatcher`); every method is synchronous so
    a single call never interleaves with another task.
    """

    def __init__(self, max_turns: int = 10):
        self.max_turns = max(1, int(max_turns))
        self._sessions: dict[str, Session] = {}

    def get(self, key: str) -> Session | None:
        return self._sessions.get(key)

    def get_or_create(self, key: str) -> Session:
        """
        Get an existing session or create a new one.

        Args:
            key: Session key (identity).

        Returns:
            The session.
        """
        session = self._sessions.get(key)
        if session is None:
            session = Session(key=key)
            self._sessions[key] = session
            logger.debug(f"Created session for {key}")
        return session

    def append(self, key: str, user_content: str, assistant_content: str) -> Session:
        """Append a completed exchange, applying the turn limit."""
        session = self.get_or_create(key)
        evicted = session.add_exchange(user_content, assistant_content, self.max_turns)
        if evicted:
            logger.debug(f"Evicted {evicted} old exchange(s) from session {key}")
        return session

    def history(self, key: str) -> list[dict[str, str]]:
        """Prior turns for `key`, empty if it has no session."""
        session = self._sessions.get(key)
        return session.get_history() if session else []

    def clear(self, key: str) -> bool:
        """Drop a session. Returns whether one existed."""
        existed = self._sessions.pop(key, None) is not None
        if existed:
            logger.info(f"Cleared session {key}")
        return existed

    def count(self) -> int:
        return len(self._sessions)

    def list_sessions(self) -> list[dict[str, Any]]:
        """
        List active sessions, most recently updated first.

        Returns:
            List of session info dicts.
        """
        sessions = [
            {
                "key": s.key,
                "exchanges": s.exchange_count,
                "created_at": s.created_at.isoformat(),
                "updated_at": s.updated_at.isoformat(),
            }
            for s in self._sessions.values()
        ]
        return sorted(sessions, key=lambda x: str(x.get("updated_at", "")), reverse=True)
