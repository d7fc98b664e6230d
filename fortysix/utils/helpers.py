"""Address and filesystem helpers."""

import re
from pathlib import Path

GROUP_SUFFIX = "@g.us"
USER_SUFFIX = "@s.whatsapp.net"


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the forty-six data directory (~/.forty-six)."""
    return ensure_dir(Path.home() / ".forty-six")


def is_group_address(address: str) -> bool:
    """Group chats are addressed by `<id>@g.us`."""
    return (address or "").endswith(GROUP_SUFFIX)


def bare_address(address: str) -> str:
    """
    Drop the device suffix from a user address.

    `15551234567:12@s.whatsapp.net` -> `15551234567@s.whatsapp.net`
    """
    if not address:
        return ""
    user, sep, server = address.partition("@")
    user = user.split(":", 1)[0]
    return f"{user}{sep}{server or USER_SUFFIX.lstrip('@')}" if sep else f"{user}{USER_SUFFIX}"


def address_number(address: str) -> str:
    """The phone-number part of an address, as shown in logs."""
    return (address or "").split("@", 1)[0].split(":", 1)[0]


def phone_digits(phone_number: str) -> str:
    """Strip everything but digits (`+1 (555) 123-4567` -> `15551234567`)."""
    return re.sub(r"[^0-9]", "", phone_number or "")


def preview(text: str, max_len: int = 50) -> str:
    """Shorten text for log lines."""
    text = text or ""
    return text[:max_len] + "..." if len(text) > max_len else text
