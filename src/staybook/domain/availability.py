"""Availability checks against the booking calendar.

Overlap formula:  (new_start < existing_end) AND (new_end > existing_start)
Strict inequality allows check-out day == check-in day (turnover is fine).

Pending bookings block the calendar exactly like confirmed ones. The
check here is read-only and advisory: the authoritative guard is the
conditional insert in bookings_repository.insert_booking_if_available.

Store failures fail closed: the caller gets TransientStoreError (never an
"available" answer), and bulk filtering drops the property.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from staybook.domain.errors import BookingEngineError, TransientStoreError
from staybook.domain.interval import Interval, overlaps
from staybook.domain.models import Booking
from staybook.infra.db import txn
from staybook.infra.repositories.bookings_repository import list_active_bookings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    conflicts: list[Interval] = field(default_factory=list)

    def to_dict(self) -> dict:
        body: dict = {"available": self.available}
        if self.conflicts:
            body["conflicting_dates"] = [c.to_dict() for c in self.conflicts]
        return body


def find_conflicts(bookings: Iterable[Booking], interval: Interval) -> list[Interval]:
    """Intervals of *bookings* that overlap *interval*, in input order."""
    candidate = interval.whole_days()
    return [b.interval for b in bookings if b.is_active and overlaps(candidate, b.interval)]


def check_availability(
    property_id: str,
    interval: Interval,
    *,
    exclude_booking_id: str | None = None,
    cur: PgCursor | None = None,
) -> AvailabilityResult:
    """Check whether *property_id* is free for *interval*.

    Args:
        property_id: Property identifier.
        interval: Requested stay.
        exclude_booking_id: Booking to ignore (re-validating itself).
        cur: Optional cursor to run inside an existing transaction.

    Raises:
        TransientStoreError: If the calendar could not be read.
    """

    def _do(c: PgCursor) -> AvailabilityResult:
        bookings = list_active_bookings(c, property_id, exclude_booking_id=exclude_booking_id)
        conflicts = find_conflicts(bookings, interval)
        return AvailabilityResult(available=not conflicts, conflicts=conflicts)

    try:
        if cur is not None:
            result = _do(cur)
        else:
            with txn() as c:
                result = _do(c)
    except psycopg2.Error as e:
        logger.error(
            "availability read failed",
            extra={"extra_fields": {"property_id": property_id, "error": type(e).__name__}},
        )
        raise TransientStoreError("availability could not be determined") from e

    if not result.available:
        start, end = interval.as_days()
        logger.info(
            "availability conflict",
            extra={
                "extra_fields": {
                    "property_id": property_id,
                    "requested_start": start.isoformat(),
                    "requested_end": end.isoformat(),
                    "conflict_count": len(result.conflicts),
                }
            },
        )
    return result


def filter_available(property_ids: Iterable[str], interval: Interval) -> list[str]:
    """Keep only properties verified free for *interval*.

    A property whose check errors is excluded rather than included.
    """
    available: list[str] = []
    for property_id in property_ids:
        try:
            result = check_availability(property_id, interval)
        except BookingEngineError as e:
            logger.warning(
                "property excluded from search: availability unknown",
                extra={"extra_fields": {"property_id": property_id, "error": type(e).__name__}},
            )
            continue
        if result.available:
            available.append(property_id)
    return available
