"""Worker routes for scheduled booking sweeps."""

from __future__ import annotations

import os
from datetime import timedelta

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from staybook.api.task_auth import verify_task_auth
from staybook.domain.bookings import complete_past_bookings, expire_pending_bookings
from staybook.domain.errors import TransientStoreError
from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/bookings", tags=["tasks"])

logger = get_logger(__name__)


def _pending_ttl() -> timedelta | None:
    """PENDING_BOOKING_TTL_MINUTES as a timedelta, None when unset or invalid."""
    raw = os.environ.get("PENDING_BOOKING_TTL_MINUTES", "").strip()
    if not raw:
        return None
    try:
        minutes = int(raw)
    except ValueError:
        logger.error(
            "PENDING_BOOKING_TTL_MINUTES is not an integer",
            extra={"extra_fields": safe_log_context(value=raw)},
        )
        return None
    return timedelta(minutes=minutes) if minutes > 0 else None


def _authorize(request: Request) -> None:
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/expire-pending")
def expire_pending(request: Request) -> JSONResponse:
    """Cancel pending bookings older than PENDING_BOOKING_TTL_MINUTES.

    Returns 200 {"ok": true, "status": "disabled"} when no TTL is configured.
    """
    _authorize(request)

    ttl = _pending_ttl()
    if ttl is None:
        return JSONResponse(status_code=200, content={"ok": True, "status": "disabled"})

    try:
        result = expire_pending_bookings(ttl)
    except TransientStoreError:
        return JSONResponse(status_code=503, content={"ok": False, "error": "store unavailable"})
    return JSONResponse(status_code=200, content={"ok": True, **result})


@router.post("/complete-past")
def complete_past(request: Request) -> JSONResponse:
    """Complete confirmed bookings whose end date has arrived."""
    _authorize(request)

    try:
        result = complete_past_bookings()
    except TransientStoreError:
        return JSONResponse(status_code=503, content={"ok": False, "error": "store unavailable"})
    return JSONResponse(status_code=200, content={"ok": True, **result})
