"""
Record Store Connections

The Flask server shares a psycopg ConnectionPool (DB_USE_POOLING=true, set by
gunicorn.conf.py). CLI runs open one connection per unit of work instead.
Either way, callers use get_db_connection() and get a transaction that
commits on a clean exit and rolls back on error.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)

DATABASE_URL: Optional[str] = None
DATABASE_SERVICE_KEY: Optional[str] = None
USE_POOLING = False

# The hosted transaction pooler cannot keep prepared statements
CONNECTION_KWARGS = {
    'row_factory': dict_row,
    'autocommit': False,
    'prepare_threshold': None,
}

pool: Optional[ConnectionPool] = None
_pool_lock = threading.Lock()


def configure(database_url, service_key, use_pooling=False):
    """
    Point the module at a record store

    Args:
        database_url: Postgres URL without the password
        service_key: Service credential, used as the connection password
        use_pooling: Share a ConnectionPool instead of connecting per call
    """
    global DATABASE_URL, DATABASE_SERVICE_KEY, USE_POOLING
    DATABASE_URL = database_url
    DATABASE_SERVICE_KEY = service_key
    USE_POOLING = use_pooling
    logger.info(f"Record store configured ({'pooled' if use_pooling else 'per-call'} connections)")


def _require_configured():
    if not DATABASE_URL:
        raise RuntimeError("Record store not configured; call db_utils.configure() first")


# ============================================================================
# POOL
# ============================================================================

def _open_pool() -> ConnectionPool:
    new_pool = ConnectionPool(
        DATABASE_URL,
        min_size=1,
        max_size=5,
        open=True,
        timeout=30,
        max_idle=600,
        kwargs={
            **CONNECTION_KWARGS,
            'password': DATABASE_SERVICE_KEY,
            'connect_timeout': 10,
        }
    )
    try:
        new_pool.check()
    except psycopg.Error:
        new_pool.close()
        raise
    return new_pool


def init_connection_pool(max_attempts=3, retry_delay=2.0) -> bool:
    """
    Open the shared pool, retrying with a growing delay

    Returns:
        True once the pool is open (or pooling is off), False if every
        attempt failed
    """
    global pool

    if not USE_POOLING:
        return True
    _require_configured()

    with _pool_lock:
        if pool is not None:
            return True

        for attempt in range(1, max_attempts + 1):
            try:
                pool = _open_pool()
                logger.info(f"Connection pool ready: {get_pool_stats()}")
                return True
            except psycopg.Error as e:
                logger.error(f"Pool attempt {attempt}/{max_attempts} failed: {e}")
                if attempt < max_attempts:
                    time.sleep(retry_delay * attempt)

    logger.error("Giving up on the connection pool")
    return False


def close_connection_pool():
    global pool

    with _pool_lock:
        if pool is not None:
            pool.close()
            pool = None
            logger.info("Connection pool closed")


def get_pool_stats():
    """Pool size, idle connections and waiting requests; None without a pool"""
    if pool is None:
        return None

    stats = pool.get_stats()
    return {
        'pool_size': stats.get('pool_size', 0),
        'pool_available': stats.get('pool_available', 0),
        'requests_waiting': stats.get('requests_waiting', 0),
    }


# ============================================================================
# CONNECTIONS
# ============================================================================

@contextmanager
def _pooled_connection():
    if pool is None and not init_connection_pool():
        raise RuntimeError("Connection pool unavailable")

    # pool.connection() commits or rolls back on exit
    with pool.connection() as conn:
        yield conn


@contextmanager
def _single_connection():
    _require_configured()
    conn = psycopg.connect(DATABASE_URL, password=DATABASE_SERVICE_KEY, **CONNECTION_KWARGS)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_db_connection():
    """Context manager yielding a connection inside one transaction"""
    return _pooled_connection() if USE_POOLING else _single_connection()


def test_connection():
    """
    Round-trip query used by the health check

    Returns:
        dict with current_database, version and current_timestamp, or None
        if the store cannot be reached
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT current_database(), version(), current_timestamp")
                return cur.fetchone()
    except (psycopg.Error, RuntimeError) as e:
        logger.error(f"Record store unreachable: {e}")
        return None
