"""Cart repository - per-user CRUD on cart_items.

Every statement is scoped by user_id so one user can never read or
touch another user's holds.
"""

from datetime import date
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.interval import Interval
from staybook.domain.models import CartItem
from staybook.infra.db import fetchall, fetchone, is_uuid

_COLUMNS = "id, user_id, property_id, start_date, end_date, guest_count, quoted_total, created_at"


def _row_to_item(row: tuple) -> CartItem:
    return CartItem(
        id=str(row[0]),
        user_id=str(row[1]),
        property_id=row[2],
        interval=Interval(row[3], row[4]),
        guest_count=row[5],
        quoted_total=row[6],
        created_at=row[7],
    )


def insert_cart_item(
    cur: PgCursor,
    *,
    user_id: str,
    property_id: str,
    start_date: date,
    end_date: date,
    guest_count: int,
    quoted_total: Decimal,
) -> CartItem:
    row = fetchone(
        cur,
        f"""
        INSERT INTO cart_items (
            user_id, property_id, start_date, end_date, guest_count, quoted_total
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING {_COLUMNS}
        """,
        (user_id, property_id, start_date, end_date, guest_count, quoted_total),
    )
    return _row_to_item(row)


def get_cart_item(cur: PgCursor, user_id: str, cart_item_id: str) -> CartItem | None:
    if not is_uuid(cart_item_id):
        return None
    row = fetchone(
        cur,
        f"SELECT {_COLUMNS} FROM cart_items WHERE id = %s AND user_id = %s",
        (cart_item_id, user_id),
    )
    return _row_to_item(row) if row is not None else None


def list_cart_items(cur: PgCursor, user_id: str) -> list[CartItem]:
    rows = fetchall(
        cur,
        f"""
        SELECT {_COLUMNS}
        FROM cart_items
        WHERE user_id = %s
        ORDER BY created_at DESC
        """,
        (user_id,),
    )
    return [_row_to_item(r) for r in rows]


def update_cart_item(
    cur: PgCursor,
    user_id: str,
    cart_item_id: str,
    *,
    start_date: date,
    end_date: date,
    guest_count: int,
    quoted_total: Decimal,
) -> CartItem | None:
    if not is_uuid(cart_item_id):
        return None
    row = fetchone(
        cur,
        f"""
        UPDATE cart_items
        SET start_date = %s, end_date = %s, guest_count = %s,
            quoted_total = %s, updated_at = now()
        WHERE id = %s AND user_id = %s
        RETURNING {_COLUMNS}
        """,
        (start_date, end_date, guest_count, quoted_total, cart_item_id, user_id),
    )
    return _row_to_item(row) if row is not None else None


def delete_cart_item(cur: PgCursor, user_id: str, cart_item_id: str) -> bool:
    if not is_uuid(cart_item_id):
        return False
    cur.execute(
        "DELETE FROM cart_items WHERE id = %s AND user_id = %s",
        (cart_item_id, user_id),
    )
    return cur.rowcount > 0


def delete_user_cart(cur: PgCursor, user_id: str) -> int:
    cur.execute("DELETE FROM cart_items WHERE user_id = %s", (user_id,))
    return cur.rowcount
