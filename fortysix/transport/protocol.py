"""Bridge wire format: one JSON object per websocket frame, keyed by `type`."""

from __future__ import annotations

import json
import secrets
import string
from collections.abc import Mapping
from typing import Any

KEY_TYPE = "type"
KEY_REQUEST_ID = "requestId"

# bridge -> bot
TYPE_CONNECTION = "connection"
TYPE_CREDS = "creds"
TYPE_MESSAGE = "message"
TYPE_RESULT = "result"

# bot -> bridge
TYPE_CONNECT = "connect"
TYPE_SEND = "send"
TYPE_PRESENCE = "presence"
TYPE_PAIRING_CODE = "pairing_code"

REASON_CONNECTION_LOST = "connection_lost"

_REQUEST_ALPHABET = string.ascii_lowercase + string.digits


def new_request_id(length: int = 12) -> str:
    return "".join(secrets.choice(_REQUEST_ALPHABET) for _ in range(max(6, length)))


def encode_frame(frame_type: str, **fields: Any) -> str:
    return json.dumps({KEY_TYPE: frame_type, **fields}, ensure_ascii=False)


def decode_frame(raw: str | bytes) -> dict[str, Any] | None:
    """Parse one frame. None unless it is a JSON object with a string `type`."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(frame, dict) or not isinstance(frame.get(KEY_TYPE), str):
        return None
    return frame


def field_text(frame: Mapping[str, Any], key: str) -> str:
    """`frame[key]` as stripped text. Numbers are stringified; anything else reads as ''."""
    value = frame.get(key)
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""
