"""Exception types shared across the bot."""

from __future__ import annotations

from enum import Enum


class FortySixError(Exception):
    """Base class for bot errors."""


class ConfigurationError(FortySixError):
    """Required settings are missing or invalid. Not retryable."""


class TransportError(FortySixError):
    """The WhatsApp transport failed to carry out a request."""


class TransportClosedError(TransportError):
    """The transport was torn down before (or while) a request was made."""


class CompletionErrorKind(str, Enum):
    SERVICE = "service"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    AUTH = "auth"
    GENERIC = "generic"


class CompletionError(FortySixError):
    """A completion request failed. `kind` drives the reply shown to the user."""

    def __init__(
        self,
        message: str,
        kind: CompletionErrorKind = CompletionErrorKind.GENERIC,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


def classify_error_text(description: str) -> CompletionErrorKind:
    """Best-effort kind for errors that reach us without one."""
    text = (description or "").lower()
    if "rate limit" in text or "429" in text or "too many requests" in text:
        return CompletionErrorKind.RATE_LIMITED
    if "timeout" in text or "timed out" in text:
        return CompletionErrorKind.TIMEOUT
    if "api key" in text or "unauthorized" in text or "401" in text:
        return CompletionErrorKind.AUTH
    if "service" in text or "unavailable" in text or "502" in text or "503" in text:
        return CompletionErrorKind.SERVICE
    return CompletionErrorKind.GENERIC
