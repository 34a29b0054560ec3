"""Booking lifecycle - the only code allowed to change a booking's status.

    pending ──► confirmed ──► completed
       │            │
       └──► cancelled ◄┘

cancelled and completed are terminal. Every transition is one guarded
UPDATE (WHERE status = <expected>) inside a short transaction, so a
booking is never left half-way between states.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.availability import check_availability, find_conflicts
from staybook.domain.errors import (
    AmountMismatchError,
    ConflictError,
    InvalidRangeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from staybook.domain.interval import Interval
from staybook.domain.models import CANCELLED, COMPLETED, CONFIRMED, PENDING, Booking
from staybook.domain.pricing import amounts_match, quote
from staybook.infra.db import txn
from staybook.infra.repositories import bookings_repository as repo
from staybook.infra.repositories.properties_repository import get_property
from staybook.infra.time import server_today, utc_now

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, tuple[str, ...]] = {
    PENDING: (CONFIRMED, CANCELLED),
    CONFIRMED: (CANCELLED, COMPLETED),
    CANCELLED: (),
    COMPLETED: (),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, ())


def ensure_future(interval: Interval, today: date | None = None) -> None:
    """Reject stays that start before today's midnight boundary."""
    start_day, _ = interval.as_days()
    if start_day < (today or server_today()):
        raise InvalidRangeError("check-in date must be today or in the future")


def _run(fn: Callable[[PgCursor], object], cur: PgCursor | None):
    if cur is not None:
        return fn(cur)
    with txn() as c:
        return fn(c)


def create_booking(
    *,
    property_id: str,
    user_id: str,
    interval: Interval,
    guest_count: int,
    cur: PgCursor | None = None,
    today: date | None = None,
) -> Booking:
    """Create a pending booking if the interval is still free.

    The price is quoted from the property's current nightly rate and the
    row is written with a single conditional insert.

    Raises:
        InvalidRangeError: Check-in is before today.
        NotFoundError: Property missing or inactive.
        ValidationError: Guest count out of range.
        ConflictError: Interval overlaps an active booking.
    """
    ensure_future(interval, today)
    if guest_count < 1:
        raise ValidationError("guest_count must be at least 1")

    def _do(c: PgCursor) -> Booking:
        prop = get_property(c, property_id)
        if prop is None or not prop.is_active:
            raise NotFoundError("Property", property_id)
        if guest_count > prop.max_guests:
            raise ValidationError(f"guest count exceeds property maximum of {prop.max_guests}")

        price = quote(prop.price_per_night, interval)
        start_date, end_date = interval.as_days()

        booking = repo.insert_booking_if_available(
            c,
            property_id=property_id,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            guest_count=guest_count,
            nightly_rate=price.nightly_rate,
            service_fee=price.service_fee,
            total_price=price.total,
        )
        if booking is None:
            conflicts = find_conflicts(repo.list_active_bookings(c, property_id), interval)
            logger.info(
                "booking create lost to overlap",
                extra={
                    "extra_fields": {
                        "property_id": property_id,
                        "start_date": start_date.isoformat(),
                        "end_date": end_date.isoformat(),
                    }
                },
            )
            raise ConflictError("dates are no longer available", conflicts)

        logger.info(
            "booking created",
            extra={
                "extra_fields": {
                    "booking_id": booking.id,
                    "property_id": property_id,
                    "nights": price.nights,
                    "total_price": str(price.total),
                }
            },
        )
        return booking

    return _run(_do, cur)


def _transition(
    c: PgCursor,
    booking_id: str,
    target: str,
    *,
    user_id: str | None = None,
    precheck: Callable[[PgCursor, Booking], None] | None = None,
) -> Booking:
    booking = repo.get_booking(c, booking_id, lock=True)
    if booking is None or (user_id is not None and booking.user_id != user_id):
        raise NotFoundError("Booking", booking_id)

    if not can_transition(booking.status, target):
        raise InvalidTransitionError(booking_id, booking.status, target)

    if precheck is not None:
        precheck(c, booking)

    updated = repo.update_booking_status(
        c, booking_id, expected_status=booking.status, new_status=target
    )
    if updated is None:
        # status moved underneath us despite the row lock (e.g. no lock support)
        latest = repo.get_booking(c, booking_id)
        current = latest.status if latest is not None else "missing"
        raise InvalidTransitionError(booking_id, current, target)

    logger.info(
        "booking transitioned",
        extra={
            "extra_fields": {
                "booking_id": booking_id,
                "property_id": booking.property_id,
                "from_status": booking.status,
                "to_status": target,
            }
        },
    )
    return updated


def confirm_booking(
    booking_id: str,
    expected_amount: object,
    *,
    cur: PgCursor | None = None,
) -> Booking:
    """Confirm a pending booking once payment for the right amount arrived.

    Raises:
        NotFoundError: Booking missing.
        InvalidTransitionError: Booking is not pending.
        AmountMismatchError: expected_amount differs from total_price by more than 0.01.
        ConflictError: Booking's interval is now shared with another active booking.
    """

    def _verify(c: PgCursor, booking: Booking) -> None:
        if not amounts_match(booking.total_price, expected_amount):
            logger.warning(
                "payment amount mismatch",
                extra={
                    "extra_fields": {
                        "booking_id": booking.id,
                        "total_price": str(booking.total_price),
                        "paid_amount": str(expected_amount),
                    }
                },
            )
            raise AmountMismatchError(booking.id, booking.total_price, expected_amount)

        result = check_availability(
            booking.property_id, booking.interval, exclude_booking_id=booking.id, cur=c
        )
        if not result.available:
            raise ConflictError("booking overlaps another active booking", result.conflicts)

    return _run(lambda c: _transition(c, booking_id, CONFIRMED, precheck=_verify), cur)


def cancel_booking(
    booking_id: str,
    *,
    user_id: str | None = None,
    cur: PgCursor | None = None,
) -> Booking:
    """Cancel a pending or confirmed booking; its dates free up at once.

    When user_id is given the booking must belong to that user.
    """
    return _run(lambda c: _transition(c, booking_id, CANCELLED, user_id=user_id), cur)


def complete_booking(booking_id: str, *, cur: PgCursor | None = None) -> Booking:
    return _run(lambda c: _transition(c, booking_id, COMPLETED), cur)


def get_booking(booking_id: str, *, user_id: str | None = None) -> Booking:
    with txn() as cur:
        booking = repo.get_booking(cur, booking_id)
    if booking is None or (user_id is not None and booking.user_id != user_id):
        raise NotFoundError("Booking", booking_id)
    return booking


def list_user_bookings(user_id: str) -> list[Booking]:
    with txn() as cur:
        return repo.list_user_bookings(cur, user_id)


def expire_pending_bookings(ttl: timedelta, *, now=None) -> dict:
    """Cancel pending bookings created more than *ttl* ago.

    Each booking is cancelled in its own transaction; one that was
    confirmed in the meantime is skipped.

    Returns:
        {"status": "ok", "expired": int, "skipped": int}
    """
    if ttl <= timedelta(0):
        raise ValidationError("ttl must be positive")

    cutoff = (now or utc_now()) - ttl
    with txn() as cur:
        stale_ids = repo.list_stale_pending_ids(cur, cutoff)

    expired = skipped = 0
    for booking_id in stale_ids:
        try:
            cancel_booking(booking_id)
            expired += 1
        except (InvalidTransitionError, NotFoundError):
            skipped += 1

    logger.info(
        "pending booking sweep finished",
        extra={"extra_fields": {"expired": expired, "skipped": skipped}},
    )
    return {"status": "ok", "expired": expired, "skipped": skipped}


def complete_past_bookings(today: date | None = None) -> dict:
    """Complete confirmed bookings whose check-out day has arrived."""
    today = today or server_today()
    with txn() as cur:
        due_ids = repo.list_completable_ids(cur, today)

    completed = skipped = 0
    for booking_id in due_ids:
        try:
            complete_booking(booking_id)
            completed += 1
        except (InvalidTransitionError, NotFoundError):
            skipped += 1

    return {"status": "ok", "completed": completed, "skipped": skipped}
