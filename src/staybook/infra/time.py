"""Clock helpers so domain code never calls datetime.now() directly."""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def server_today() -> date:
    """Calendar day at the server's local midnight boundary."""
    return datetime.now().date()
