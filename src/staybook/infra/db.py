"""Database access layer using psycopg2.

Provides:
- get_conn(): connection from DATABASE_URL with a bounded statement timeout
- txn(): short transaction context manager (commit/rollback/close)
- fetchone/fetchall: query helpers

Connection loss and statement timeouts surface as TransientStoreError so
callers can retry without knowing about psycopg2.
"""

import os
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Sequence
from urllib.parse import urlparse

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

from staybook.domain.errors import TransientStoreError

DEFAULT_STATEMENT_TIMEOUT_MS = 5000


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(urlparse(dsn).password)
    return any(part.startswith("password=") for part in dsn.split())


def _statement_timeout_ms() -> int:
    raw = os.environ.get("DB_STATEMENT_TIMEOUT_MS", "")
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_STATEMENT_TIMEOUT_MS
    return value if value > 0 else DEFAULT_STATEMENT_TIMEOUT_MS


def get_conn() -> PgConnection:
    """Open a new connection from DATABASE_URL.

    DB_PASSWORD is injected when the DSN carries no password (secret
    managers usually ship it separately).

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        TransientStoreError: If the server cannot be reached.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    kwargs: dict[str, Any] = {
        "options": f"-c statement_timeout={_statement_timeout_ms()}",
    }
    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not _dsn_has_password(dsn):
        kwargs["password"] = db_password

    try:
        return psycopg2.connect(dsn, **kwargs)
    except psycopg2.OperationalError as e:
        raise TransientStoreError("database unavailable") from e


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Run the enclosed block in one transaction.

    Commits on success, rolls back on any exception. A connection opened
    here is closed on exit; a caller-supplied one is left open.

    Example:
        with txn() as cur:
            cur.execute("UPDATE bookings SET status = %s WHERE id = %s", ("cancelled", bid))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except psycopg2.OperationalError as e:
        conn.rollback()
        raise TransientStoreError("database operation failed") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


def is_uuid(value: object) -> bool:
    """True if *value* parses as a UUID; ids from URLs are checked before querying."""
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def fetchone(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    cur.execute(query, params)
    return cur.fetchone()


def fetchall(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> list[tuple[Any, ...]]:
    cur.execute(query, params)
    return cur.fetchall()
