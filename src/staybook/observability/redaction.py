"""Redaction helpers for safe logging of booking and gateway data."""

import re
from decimal import Decimal
from typing import Any

_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
# sha512 hex digests (gateway signatures) are 128 chars
_DIGEST_PATTERN = re.compile(r"\b[0-9a-fA-F]{64,}\b")

# Keys whose values must never reach a log line, whatever their shape.
SECRET_KEYS = frozenset(
    {"signature", "signature_key", "server_key", "authorization", "snap_token", "token"}
)

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    result = _DIGEST_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return _PHONE_PATTERN.sub(_REDACTED, result)


def redact_value(value: Any) -> Any:
    """Reduce *value* to something safe to log.

    Scalars pass through (strings scrubbed); containers are summarised by
    shape only so payload contents never leak.
    """
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={sorted(value.keys())})"
    if isinstance(value, (list, tuple, set)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, Any]:
    """Build an ``extra_fields`` dict with every value redacted."""
    return {
        key: _REDACTED if key.lower() in SECRET_KEYS else redact_value(value)
        for key, value in kwargs.items()
    }
