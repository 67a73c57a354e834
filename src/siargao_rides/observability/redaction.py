"""Redaction helpers for safe logging.

Guest bookings carry a contact snapshot (name, e-mail, phone). Every log
context goes through safe_log_context: known contact keys are masked
outright, any other string is scrubbed of phone/e-mail patterns, and
containers are reduced to their shape.
"""

import re
from datetime import date, datetime
from typing import Any

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# A name has no recognizable pattern, so contact fields are masked by key
CONTACT_KEYS = frozenset({"guest_name", "guest_email", "guest_phone", "email", "phone", "name"})

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    return _EMAIL_PATTERN.sub(_REDACTED, _PHONE_PATTERN.sub(_REDACTED, value))


def redact_value(value: Any) -> str:
    """String form of `value` that is safe to log."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    # Dates are checked before str: ISO dates look like phone numbers to the regex
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={sorted(str(k) for k in value)})"
    if isinstance(value, (list, tuple, set, frozenset)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def short_id(value: str | None, length: int = 8) -> str | None:
    """Prefix of an identifier, enough to correlate without dumping full ids."""
    if value is None:
        return None
    return value[:length]


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Context dict for extra={"extra_fields": ...}; every value redacted."""
    return {
        key: _REDACTED if key in CONTACT_KEYS and value is not None else redact_value(value)
        for key, value in kwargs.items()
    }
