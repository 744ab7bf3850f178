import os
import threading
from contextlib import contextmanager
from typing import Optional

import psycopg
from psycopg.rows import dict_row

# psycopg3 connection pooling lives in a separate package.
from psycopg_pool import ConnectionPool

from .errors import StoreFailure
from .logs import json_log

DATABASE_URL = os.getenv("APP_DATABASE_URL") or os.getenv("DATABASE_URL") or "postgresql://localhost/karne"

def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default

# Pool sizing defaults are conservative for local/dev. Override in prod via env:
# - DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE
_POOL_MIN = _env_int("DB_POOL_MIN_SIZE", 1)
_POOL_MAX = _env_int("DB_POOL_MAX_SIZE", 10)

# Opened on first use; importing the API does not connect.
_pool: Optional[ConnectionPool] = None
_pool_lock = threading.Lock()


def _get_pool() -> ConnectionPool:
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = ConnectionPool(
                conninfo=DATABASE_URL,
                min_size=_POOL_MIN,
                max_size=_POOL_MAX,
                kwargs={"row_factory": dict_row},
                open=True,
            )
        return _pool


@contextmanager
def _pooled_conn(pool: ConnectionPool):
    # `with get_conn() as conn:` commits on success, rolls back on exception
    # and returns the connection to the pool.
    with pool.connection() as conn:
        with conn:
            yield conn


def get_conn():
    return _pooled_conn(_get_pool())


def close_pools() -> None:
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.close()
            _pool = None


def set_tenant_context(conn, tenant_id: str):
    with conn.cursor() as cur:
        # `SET ... = %s` is not valid when using the extended query protocol (psycopg sends $1).
        # Use set_config() to safely parameterize the value.
        cur.execute(
            "SELECT set_config('app.current_tenant_id', %s::text, true)",
            (tenant_id,),
        )


@contextmanager
def ledger_session(tenant_id: str):
    """
    One ledger operation = one transaction.

    Yields a `PgLedgerStore` bound to a cursor inside `conn.transaction()`, so the
    settlement/sale/purchase row and its balance delta commit or roll back together.
    Connection-level failures surface as `StoreFailure` (retryable, nothing applied).
    """
    from .store import PgLedgerStore

    try:
        with get_conn() as conn:
            set_tenant_context(conn, tenant_id)
            with conn.transaction():
                with conn.cursor() as cur:
                    yield PgLedgerStore(cur)
    except psycopg.OperationalError as exc:
        json_log("error", "ledger.store.failure", tenant_id=tenant_id, error=str(exc))
        raise StoreFailure() from exc
