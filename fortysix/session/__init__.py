"""Session management module."""

from fortysix.session.manager import Session, SessionManager

__all__ = ["Session", "SessionManager"]
