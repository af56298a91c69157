"""Database helpers for the worker."""

import logging
import threading
from contextlib import contextmanager
from typing import Optional

from psycopg2 import pool

from repair_directory.core.config import get_settings

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.ThreadedConnectionPool] = None
# Callers wait here for a free connection instead of hitting PoolError.
_connection_slots: Optional[threading.BoundedSemaphore] = None
_init_lock = threading.Lock()


def init_pool(minconn: int = 1, maxconn: Optional[int] = None) -> pool.ThreadedConnectionPool:
    """Initialise and return the shared, thread-safe connection pool.

    ``maxconn`` defaults to the larger of ``DB_POOL_MAX_CONNECTIONS`` and the
    scrape fan-out width, so every concurrent jurisdiction can hold one.
    """
    global _connection_pool, _connection_slots
    with _init_lock:
        if _connection_pool is None:
            settings = get_settings()
            if not settings.database_url:
                raise RuntimeError("DATABASE_URL is required for database connections")
            maxconn = maxconn or max(settings.db_pool_max_connections, settings.scrape_concurrency)
            _connection_pool = pool.ThreadedConnectionPool(
                minconn,
                maxconn,
                dsn=settings.database_url,
                connect_timeout=10,
            )
            _connection_slots = threading.BoundedSemaphore(maxconn)
            logger.info("Database connection pool initialised (maxconn=%d)", maxconn)
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection.

    The transaction is committed when the block exits cleanly and rolled back
    when it raises, so each ``with`` block is one atomic unit of work.
    """
    pg_pool = init_pool()
    slots = _connection_slots
    slots.acquire()
    try:
        conn = pg_pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pg_pool.putconn(conn)
    finally:
        slots.release()
