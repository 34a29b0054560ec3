"""Translate engine errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from staybook.domain.errors import (
    BookingEngineError,
    ConflictError,
    InvalidRangeError,
    InvalidTransitionError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)


def http_error(exc: BookingEngineError) -> HTTPException:
    """HTTPException for *exc*; conflicts carry the clashing date ranges."""
    if isinstance(exc, (InvalidRangeError, ValidationError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=f"{exc.resource} not found")
    if isinstance(exc, ConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "conflicting_dates": [c.to_dict() for c in exc.conflicts],
            },
        )
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(
            status_code=409,
            detail={"message": str(exc), "current": exc.current, "target": exc.target},
        )
    if isinstance(exc, TransientStoreError):
        return HTTPException(status_code=503, detail="temporarily unavailable, retry")
    # amount and signature failures are gateway-side only; keep the reply generic
    return HTTPException(status_code=400, detail="request rejected")
