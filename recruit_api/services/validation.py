"""Shared validation and sanitisation helpers for user-controlled input."""

import re
import uuid
from typing import Optional
from urllib.parse import urlparse

# Control characters except tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_text(text: Optional[str], max_length: int = 5000) -> Optional[str]:
    """Strip control characters, trim and cap length.

    Returns None for None input. An all-whitespace string becomes "".
    """
    if text is None:
        return None
    cleaned = _CONTROL_CHARS.sub("", str(text)).strip()
    return cleaned[:max_length]


def is_valid_uuid(value: Optional[str]) -> bool:
    if not value or not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def is_valid_url(value: Optional[str]) -> bool:
    """Only absolute http(s) URLs with a host are accepted."""
    if not value or not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
