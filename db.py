from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool

from app.ious.errors import StorageError
from settings import settings

_pool: SimpleConnectionPool | None = None

# applied to every checked-out connection
SESSION_SETTINGS = (
    "SET statement_timeout = '5000ms';",
    "SET idle_in_transaction_session_timeout = '5000ms';",
    "SET application_name = 'relief_offline_api';",
)


def init_pool():
    """
    Create the pool on first use. Only the postgres IOU backend needs it.
    """
    global _pool
    if _pool is not None:
        return

    dsn = (settings.DATABASE_URL or "").strip()
    if not dsn:
        raise StorageError("DATABASE_URL is not set")
    try:
        _pool = SimpleConnectionPool(
            minconn=1,
            maxconn=settings.DB_POOL_MAX,
            dsn=dsn,
            connect_timeout=5,
        )
    except psycopg2.Error as exc:
        raise StorageError(f"Could not connect to database: {exc}") from exc


def close_pool():
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None


@contextmanager
def get_conn():
    """
    Transactional connection: commit on success, rollback on any error.
    """
    if _pool is None:
        init_pool()

    try:
        conn = _pool.getconn()
    except psycopg2.Error as exc:
        raise StorageError(f"Could not acquire database connection: {exc}") from exc

    try:
        with conn.cursor() as cur:
            for statement in SESSION_SETTINGS:
                cur.execute(statement)

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        _pool.putconn(conn)


def dict_cursor(conn):
    return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
