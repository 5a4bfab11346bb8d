from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool


class PostgresPool:
    """Connection pool shared by the dispatcher thread and health readers."""

    def __init__(self, dsn: str, minconn: int = 1, maxconn: int = 5):
        self._pool = ThreadedConnectionPool(minconn, maxconn, dsn=dsn, cursor_factory=RealDictCursor)

    @contextmanager
    def connection(self) -> Iterator[psycopg2.extensions.connection]:
        conn = self._pool.getconn()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def close(self) -> None:
        self._pool.closeall()


@contextmanager
def transaction(conn) -> Iterator[psycopg2.extensions.connection]:
    """Commit on success, roll back on error. Producers write outbox rows inside this."""
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()


def fetch_one(conn, query: str, params: Optional[tuple] = None):
    with conn.cursor() as cur:
        cur.execute(query, params or ())
        return cur.fetchone()


def fetch_all(conn, query: str, params: Optional[tuple] = None):
    with conn.cursor() as cur:
        cur.execute(query, params or ())
        return cur.fetchall()


def execute(conn, query: str, params: Optional[tuple] = None) -> int:
    with conn.cursor() as cur:
        cur.execute(query, params or ())
        rowcount = cur.rowcount
    conn.commit()
    return rowcount
