"""Properties repository - read-only view of listing data the engine needs."""

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.models import Property
from staybook.infra.db import fetchone


def get_property(cur: PgCursor, property_id: str) -> Property | None:
    row = fetchone(
        cur,
        """
        SELECT id, title, price_per_night, max_guests, is_active
        FROM properties
        WHERE id = %s
        """,
        (property_id,),
    )
    if row is None:
        return None
    return Property(
        id=row[0],
        title=row[1],
        price_per_night=row[2],
        max_guests=row[3],
        is_active=row[4],
    )
