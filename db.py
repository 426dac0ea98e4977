import logging
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool

from settings import settings

logger = logging.getLogger("campuseats.db")

_pool: SimpleConnectionPool | None = None


def init_pool():
    """
    Create the Supabase Postgres pool on first use.
    """
    global _pool
    if _pool is not None:
        return
    psycopg2.extras.register_uuid()
    _pool = SimpleConnectionPool(
        minconn=1,
        maxconn=settings.DB_POOL_MAX,
        dsn=settings.DATABASE_URL,
        connect_timeout=settings.DB_CONNECT_TIMEOUT_S,
        application_name="campuseats_payouts",
    )
    logger.info("db_pool_ready maxconn=%s", settings.DB_POOL_MAX)


def close_pool():
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None
        logger.info("db_pool_closed")


@contextmanager
def get_conn():
    """
    One transaction per block: commit on success, rollback on any error.
    """
    if _pool is None:
        init_pool()

    conn = _pool.getconn()
    try:
        with conn.cursor() as cur:
            cur.execute("SET statement_timeout = %s;", (f"{settings.DB_STATEMENT_TIMEOUT_MS}ms",))
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.putconn(conn)
