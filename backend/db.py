from contextlib import contextmanager
from typing import Iterator

from psycopg2 import pool as pg_pool
from psycopg2.extensions import connection as PgConnection

_POOL: pg_pool.ThreadedConnectionPool | None = None


def init_pool(dsn: str, min_conn: int = 1, max_conn: int = 10, sslmode: str = "require") -> pg_pool.ThreadedConnectionPool:
    global _POOL
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable is not set")
    if _POOL is None:
        _POOL = pg_pool.ThreadedConnectionPool(
            min_conn,
            max_conn,
            dsn=dsn,
            sslmode=sslmode,
            connect_timeout=10,
        )
    return _POOL


def get_connection() -> PgConnection:
    if _POOL is None:
        raise RuntimeError("Database pool has not been initialised")
    return _POOL.getconn()


def release_connection(conn: PgConnection | None) -> None:
    if conn and _POOL is not None:
        _POOL.putconn(conn)


@contextmanager
def transaction() -> Iterator[PgConnection]:
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        release_connection(conn)


def close_pool() -> None:
    global _POOL
    if _POOL is not None:
        _POOL.closeall()
        _POOL = None
