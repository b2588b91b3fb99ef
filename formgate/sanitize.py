"""Input validation and HTML escaping for form fields.

Every validator returns the normalized value, or None when the input is
rejected. Non-string inputs are always rejected.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlsplit

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_STRIP_RE = re.compile(r"[^\d\s+\-()]")
# Letters of any script, digits, whitespace, hyphen, apostrophe.
_NAME_RE = re.compile(r"^(?:[^\W_]|[\s\-'])+$")

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}
_HTML_ESCAPE_RE = re.compile(r"[&<>\"'/]")


def escape_html(text: Any) -> str:
    """Entity-encode text for interpolation into HTML email bodies."""
    if not text or not isinstance(text, str):
        return ""
    return _HTML_ESCAPE_RE.sub(lambda m: _HTML_ESCAPES[m.group(0)], text)


def validate_email(email: Any) -> str | None:
    if not email or not isinstance(email, str):
        return None
    trimmed = email.strip().lower()
    if len(trimmed) < 5 or len(trimmed) > 254 or not _EMAIL_RE.match(trimmed):
        return None
    return trimmed


def validate_phone(phone: Any) -> str | None:
    if not phone or not isinstance(phone, str):
        return None
    cleaned = _PHONE_STRIP_RE.sub("", phone)
    digits = sum(1 for ch in cleaned if ch.isdigit())
    if digits < 7 or len(cleaned) > 20:
        return None
    return cleaned.strip()


def validate_text_field(text: Any, min_length: int = 1, max_length: int = 5000) -> str | None:
    if not text or not isinstance(text, str):
        return None
    trimmed = text.strip()
    if len(trimmed) < min_length or len(trimmed) > max_length:
        return None
    return trimmed


def validate_name(name: Any, min_length: int = 2, max_length: int = 100) -> str | None:
    if not name or not isinstance(name, str):
        return None
    trimmed = name.strip()
    if len(trimmed) < min_length or len(trimmed) > max_length or not _NAME_RE.match(trimmed):
        return None
    return trimmed


def validate_url(url: Any, max_length: int = 2048) -> str | None:
    """Accept absolute http(s) URLs with a host (brochure links)."""
    if not url or not isinstance(url, str):
        return None
    trimmed = url.strip()
    if len(trimmed) > max_length or any(ch.isspace() for ch in trimmed):
        return None
    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return None
    if parts.scheme not in {"http", "https"} or not parts.hostname:
        return None
    return trimmed
