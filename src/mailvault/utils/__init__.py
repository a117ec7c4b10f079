"""Utility functions for MailVault."""

from __future__ import annotations

import time
import uuid
from email.utils import parseaddr


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_email(email: str) -> str:
    """Lowercase and strip an address so allow-list lookups are exact matches."""
    return email.strip().lower()


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value is matched literally (ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def extend_references(references: str | None, message_id: str) -> str:
    """Append a provider message id to a space-separated References chain."""
    if references:
        return f"{references} {message_id}"
    return message_id


def parse_address(value: str) -> str:
    """Extract and normalize the bare address from a header value.

    ``"Alice <Alice@Example.com>"`` becomes ``"alice@example.com"``. Values
    that do not parse as an address are normalized as-is.
    """
    _, addr = parseaddr(value)
    return normalize_email(addr or value)
