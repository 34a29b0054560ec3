"""Payments repository - gateway orders and applied-notification receipts."""

from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.models import Payment
from staybook.infra.db import fetchone

_COLUMNS = "id, booking_id, user_id, order_id, amount, status, transaction_id, snap_token, redirect_url"


def _row_to_payment(row: tuple) -> Payment:
    return Payment(
        id=str(row[0]),
        booking_id=str(row[1]),
        user_id=str(row[2]),
        order_id=row[3],
        amount=row[4],
        status=row[5],
        transaction_id=row[6],
        snap_token=row[7],
        redirect_url=row[8],
    )


def insert_payment(
    cur: PgCursor,
    *,
    booking_id: str,
    user_id: str,
    order_id: str,
    amount: Decimal,
    snap_token: str,
    redirect_url: str,
) -> Payment | None:
    """Insert the payment for a booking (one per booking).

    Returns:
        The new Payment, or None if the booking already has one.
    """
    row = fetchone(
        cur,
        f"""
        INSERT INTO payments (
            booking_id, user_id, order_id, amount, status, snap_token, redirect_url
        )
        VALUES (%s, %s, %s, %s, 'pending', %s, %s)
        ON CONFLICT (booking_id) DO NOTHING
        RETURNING {_COLUMNS}
        """,
        (booking_id, user_id, order_id, amount, snap_token, redirect_url),
    )
    return _row_to_payment(row) if row is not None else None


def get_payment_by_booking(cur: PgCursor, booking_id: str) -> Payment | None:
    row = fetchone(
        cur,
        f"SELECT {_COLUMNS} FROM payments WHERE booking_id = %s",
        (booking_id,),
    )
    return _row_to_payment(row) if row is not None else None


def get_payment_by_order_id(cur: PgCursor, order_id: str, *, lock: bool = False) -> Payment | None:
    suffix = " FOR UPDATE" if lock else ""
    row = fetchone(
        cur,
        f"SELECT {_COLUMNS} FROM payments WHERE order_id = %s{suffix}",
        (order_id,),
    )
    return _row_to_payment(row) if row is not None else None


def record_gateway_status(
    cur: PgCursor,
    payment_id: str,
    *,
    status: str,
    transaction_id: str,
    payment_type: str | None,
) -> None:
    cur.execute(
        """
        UPDATE payments
        SET status = %s, transaction_id = %s,
            payment_type = COALESCE(%s, payment_type), updated_at = now()
        WHERE id = %s
        """,
        (status, transaction_id, payment_type, payment_id),
    )


def mark_processed(cur: PgCursor, *, source: str, external_id: str) -> bool:
    """Record a receipt in processed_events.

    Returns:
        True if newly recorded, False if it was already there.
    """
    cur.execute(
        """
        INSERT INTO processed_events (source, external_id)
        VALUES (%s, %s)
        ON CONFLICT (source, external_id) DO NOTHING
        """,
        (source, external_id),
    )
    return cur.rowcount > 0


def is_processed(cur: PgCursor, *, source: str, external_id: str) -> bool:
    row = fetchone(
        cur,
        "SELECT 1 FROM processed_events WHERE source = %s AND external_id = %s",
        (source, external_id),
    )
    return row is not None
