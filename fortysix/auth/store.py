"""Persistent store for WhatsApp authentication state."""

from __future__ import annotations

import json
import secrets
import string
import time
from pathlib import Path
from typing import Any

from loguru import logger

SESSION_FIELD = "SESSION"
SESSION_LABEL_PREFIX = "FortySix~"
_LABEL_ALPHABET = string.ascii_lowercase + string.digits


def _base36(value: int) -> str:
    if value <= 0:
        return "0"
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = _LABEL_ALPHABET[rem] + out
    return out


def new_session_label() -> str:
    """`FortySix~<8 random chars><millis in base36>`."""
    suffix = "".join(secrets.choice(_LABEL_ALPHABET) for _ in range(8))
    return f"{SESSION_LABEL_PREFIX}{suffix}{_base36(int(time.time() * 1000))}"


class CredentialStore:
    """
    JSON-backed store for the opaque auth blob.

    The blob lives in `<auth_dir>/creds.json`. The `SESSION` field is owned
    by us and survives every write of transport credentials.

    No method raises on I/O problems: failures are logged and reported
    through the return value so the bot keeps running in memory.
    """

    CREDS_FILENAME = "creds.json"

    def __init__(self, auth_dir: Path):
        self.auth_dir = auth_dir

    @property
    def path(self) -> Path:
        return self.auth_dir / self.CREDS_FILENAME

    def exists(self) -> bool:
        """True if a credentials file from an earlier login is present."""
        return self.path.is_file()

    def load(self) -> dict[str, Any] | None:
        """Return the stored credentials, or None for a fresh install."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.warning(f"Failed to read credentials {self.path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed credentials file {self.path}")
            return None
        return data

    def save(self, state: dict[str, Any]) -> bool:
        """Persist credentials, keeping fields we added ourselves."""
        existing = self.load() or {}
        merged = dict(state)
        if SESSION_FIELD not in merged and existing.get(SESSION_FIELD):
            merged[SESSION_FIELD] = existing[SESSION_FIELD]
        return self._write(merged)

    def session_label(self) -> str | None:
        data = self.load() or {}
        label = data.get(SESSION_FIELD)
        return label if isinstance(label, str) and label else None

    def ensure_session_label(self) -> str:
        """
        Return the stored session label, generating one on first use.

        The label is merged into the existing file without touching other
        fields. If it cannot be written it is still returned.
        """
        current = self.session_label()
        if current:
            return current

        label = new_session_label()
        data = self.load() or {}
        data[SESSION_FIELD] = label
        if self._write(data):
            logger.info(f"Generated session label {label}")
        else:
            logger.warning("Could not save session label; it will be regenerated next run")
        return label

    def _write(self, data: dict[str, Any]) -> bool:
        try:
            self.auth_dir.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
            return True
        except Exception as e:
            logger.warning(f"Failed to save credentials to {self.path}: {e}")
            return False
