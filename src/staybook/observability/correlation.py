"""Request correlation ids shared by logs and outbound gateway calls."""

import uuid
from contextvars import ContextVar, Token

CORRELATION_ID_HEADER = "X-Correlation-ID"

_correlation_id: ContextVar[str] = ContextVar("staybook_correlation_id", default="")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str:
    """Return the correlation id bound to the current request, or ""."""
    return _correlation_id.get()


def bind_correlation_id(cid: str | None) -> Token[str]:
    """Bind *cid* (or a fresh id when empty) to the current context."""
    return _correlation_id.set(cid or generate_correlation_id())


def unbind_correlation_id(token: Token[str]) -> None:
    _correlation_id.reset(token)
