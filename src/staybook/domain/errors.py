"""Error taxonomy for the reservation engine.

Routes map these onto HTTP status codes; nothing below the API layer
should need to know about HTTP.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from staybook.domain.interval import Interval


class BookingEngineError(Exception):
    """Base class for every error raised by the engine."""


class InvalidRangeError(BookingEngineError, ValueError):
    """Date range is malformed (end <= start) or otherwise unusable."""


class ValidationError(BookingEngineError, ValueError):
    """Request input is invalid for reasons other than the date range."""


class ConflictError(BookingEngineError):
    """Requested interval overlaps an active booking."""

    def __init__(self, message: str, conflicts: list[Interval] | None = None) -> None:
        self.conflicts = list(conflicts or [])
        super().__init__(message)


class InvalidTransitionError(BookingEngineError):
    """Booking status move not allowed by the lifecycle."""

    def __init__(self, booking_id: str, current: str, target: str) -> None:
        self.booking_id = booking_id
        self.current = current
        self.target = target
        super().__init__(f"Booking {booking_id} cannot move from '{current}' to '{target}'")


class AmountMismatchError(BookingEngineError):
    """Paid amount differs from the booking total beyond tolerance."""

    def __init__(self, booking_id: str, expected: object, actual: object) -> None:
        self.booking_id = booking_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Amount mismatch for booking {booking_id}: stored {expected}, got {actual}"
        )


class SignatureError(BookingEngineError):
    """Payment notification failed authenticity verification."""


class TransientStoreError(BookingEngineError):
    """Storage or gateway I/O failed; safe to retry."""


class NotFoundError(BookingEngineError, LookupError):
    """Booking, property, cart item or payment does not exist."""

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")
