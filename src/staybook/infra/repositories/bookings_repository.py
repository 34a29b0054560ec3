"""Bookings repository - the only writer of the booking calendar.

Uses raw SQL with psycopg2 (no ORM). Two write paths exist:
- insert_booking_if_available(): conditional insert of a pending booking
- update_booking_status(): status change guarded by the expected status
"""

from datetime import date, datetime
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.interval import Interval
from staybook.domain.models import ACTIVE_STATUSES, CONFIRMED, PENDING, Booking
from staybook.infra.db import fetchall, fetchone, is_uuid

_COLUMNS = """
    id, property_id, user_id, start_date, end_date, guest_count,
    nightly_rate, service_fee, total_price, status, created_at, updated_at
"""


def _row_to_booking(row: tuple) -> Booking:
    return Booking(
        id=str(row[0]),
        property_id=row[1],
        user_id=str(row[2]),
        interval=Interval(row[3], row[4]),
        guest_count=row[5],
        nightly_rate=row[6],
        service_fee=row[7],
        total_price=row[8],
        status=row[9],
        created_at=row[10],
        updated_at=row[11],
    )


def list_active_bookings(
    cur: PgCursor,
    property_id: str,
    *,
    exclude_booking_id: str | None = None,
) -> list[Booking]:
    """Active (pending + confirmed) bookings for a property, by start date."""
    conditions = ["property_id = %s", "status = ANY(%s::booking_status[])"]
    params: list = [property_id, list(ACTIVE_STATUSES)]

    if exclude_booking_id is not None:
        conditions.append("id != %s")
        params.append(exclude_booking_id)

    rows = fetchall(
        cur,
        f"""
        SELECT {_COLUMNS}
        FROM bookings
        WHERE {" AND ".join(conditions)}
        ORDER BY start_date ASC
        """,
        params,
    )
    return [_row_to_booking(r) for r in rows]


def insert_booking_if_available(
    cur: PgCursor,
    *,
    property_id: str,
    user_id: str,
    start_date: date,
    end_date: date,
    guest_count: int,
    nightly_rate: Decimal,
    service_fee: Decimal,
    total_price: Decimal,
) -> Booking | None:
    """Insert a pending booking only if no active booking overlaps it.

    The NOT EXISTS guard handles the common case; the
    ``no_active_booking_overlap`` exclusion constraint arbitrates
    concurrent inserts, and ON CONFLICT DO NOTHING turns a lost race into
    "no row" instead of an exception.

    Returns:
        The new Booking, or None if the interval is taken.
    """
    row = fetchone(
        cur,
        f"""
        INSERT INTO bookings (
            property_id, user_id, start_date, end_date, guest_count,
            nightly_rate, service_fee, total_price, status
        )
        SELECT %s, %s::uuid, %s::date, %s::date, %s, %s, %s, %s, %s::booking_status
        WHERE NOT EXISTS (
            SELECT 1 FROM bookings
            WHERE property_id = %s
              AND status = ANY(%s::booking_status[])
              AND start_date < %s
              AND end_date > %s
        )
        ON CONFLICT DO NOTHING
        RETURNING {_COLUMNS}
        """,
        (
            property_id,
            user_id,
            start_date,
            end_date,
            guest_count,
            nightly_rate,
            service_fee,
            total_price,
            PENDING,
            property_id,
            list(ACTIVE_STATUSES),
            end_date,
            start_date,
        ),
    )
    return _row_to_booking(row) if row is not None else None


def get_booking(cur: PgCursor, booking_id: str, *, lock: bool = False) -> Booking | None:
    if not is_uuid(booking_id):
        return None
    suffix = " FOR UPDATE" if lock else ""
    row = fetchone(
        cur,
        f"SELECT {_COLUMNS} FROM bookings WHERE id = %s{suffix}",
        (booking_id,),
    )
    return _row_to_booking(row) if row is not None else None


def update_booking_status(
    cur: PgCursor,
    booking_id: str,
    *,
    expected_status: str,
    new_status: str,
) -> Booking | None:
    """Move a booking to new_status only if it is still in expected_status.

    Returns:
        Updated Booking, or None if the row is missing or its status moved.
    """
    row = fetchone(
        cur,
        f"""
        UPDATE bookings
        SET status = %s, updated_at = now()
        WHERE id = %s AND status = %s
        RETURNING {_COLUMNS}
        """,
        (new_status, booking_id, expected_status),
    )
    return _row_to_booking(row) if row is not None else None


def list_user_bookings(cur: PgCursor, user_id: str, *, limit: int = 100) -> list[Booking]:
    rows = fetchall(
        cur,
        f"""
        SELECT {_COLUMNS}
        FROM bookings
        WHERE user_id = %s
        ORDER BY created_at DESC
        LIMIT %s
        """,
        (user_id, limit),
    )
    return [_row_to_booking(r) for r in rows]


def list_stale_pending_ids(cur: PgCursor, created_before: datetime, *, limit: int = 500) -> list[str]:
    rows = fetchall(
        cur,
        """
        SELECT id FROM bookings
        WHERE status = %s AND created_at < %s
        ORDER BY created_at ASC
        LIMIT %s
        """,
        (PENDING, created_before, limit),
    )
    return [str(r[0]) for r in rows]


def list_completable_ids(cur: PgCursor, today: date, *, limit: int = 500) -> list[str]:
    """Confirmed bookings whose check-out day has been reached."""
    rows = fetchall(
        cur,
        """
        SELECT id FROM bookings
        WHERE status = %s AND end_date <= %s
        ORDER BY end_date ASC
        LIMIT %s
        """,
        (CONFIRMED, today, limit),
    )
    return [str(r[0]) for r in rows]
