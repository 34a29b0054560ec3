"""Users repository - maps OIDC subjects to local user ids."""

from psycopg2.extensions import cursor as PgCursor

from staybook.infra.db import fetchone


def get_user_by_subject(cur: PgCursor, external_subject: str) -> tuple | None:
    """Return (id, external_subject, email, name) or None."""
    return fetchone(
        cur,
        "SELECT id, external_subject, email, name FROM users WHERE external_subject = %s",
        (external_subject,),
    )
