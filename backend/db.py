"""
Database connection helper.

This module centralizes how connections are created. Connections come from
a single `psycopg_pool.ConnectionPool` that is opened lazily on first use
and reused for the lifetime of the process.

Why this exists:
- Single place to own connection strategy and the table definitions.
- Keeps repository code focused on SQL and row mapping.
- Gives services one transaction boundary: everything done on the
  connection yielded by `get_conn()` commits together or not at all.

Usage:
    from db import get_conn
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")

Any `psycopg.Error` escaping the block is re-raised as `StorageFailure`
after the transaction has been rolled back.
"""

import threading
from contextlib import contextmanager

import psycopg
from psycopg_pool import ConnectionPool

from errors import StorageFailure
from models import Category, DataType
from settings import settings

_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _enum_sql(enum_cls) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


SCHEMA_DDL = f'''
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    email TEXT NOT NULL UNIQUE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS entries (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    occurred_at TIMESTAMP WITH TIME ZONE NOT NULL,
    raw_text TEXT,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT clock_timestamp()
);

CREATE INDEX IF NOT EXISTS idx_entries_user_occurred ON entries (user_id, occurred_at);

CREATE TABLE IF NOT EXISTS field_types (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    data_type TEXT NOT NULL CHECK (data_type IN ({_enum_sql(DataType)})),
    category TEXT CHECK (category IN ({_enum_sql(Category)})),
    config JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    usage_count INTEGER NOT NULL DEFAULT 0 CHECK (usage_count >= 0),
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT clock_timestamp()
);

CREATE UNIQUE INDEX IF NOT EXISTS user_name_unique ON field_types (user_id, name);

CREATE TABLE IF NOT EXISTS field_values (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    entry_id UUID NOT NULL REFERENCES entries (id) ON DELETE CASCADE,
    field_type_id UUID NOT NULL REFERENCES field_types (id) ON DELETE CASCADE,
    text_value TEXT,
    number_value NUMERIC,
    boolean_value BOOLEAN,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT clock_timestamp()
);

CREATE INDEX IF NOT EXISTS idx_field_values_entry ON field_values (entry_id);
CREATE INDEX IF NOT EXISTS idx_field_values_field_type ON field_values (field_type_id);
'''


def get_pool() -> ConnectionPool:
    """Return the process-wide pool, opening it on first call."""

    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                _pool = ConnectionPool(
                    settings.db_url,
                    min_size=settings.db_pool_min_size,
                    max_size=settings.db_pool_max_size,
                    kwargs={"connect_timeout": settings.db_connect_timeout},
                    timeout=settings.db_connect_timeout,
                    open=True,
                )
    return _pool


def close_pool() -> None:
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.close()
            _pool = None


@contextmanager
def get_conn():
    """Yield a pooled connection wrapped in one transaction.

    The pool commits when the block exits cleanly and rolls back when it
    raises. Driver errors are translated to `StorageFailure` so callers
    never see psycopg internals.
    """

    try:
        with get_pool().connection() as conn:
            yield conn
    except psycopg.Error as e:
        raise StorageFailure(str(e)) from e


def init_schema(conn) -> None:
    """Create all tables and indexes if they do not exist yet."""

    with conn.cursor() as cur:
        cur.execute(SCHEMA_DDL)


def ensure_user(conn, user_id: str, email: str) -> None:
    """Insert the user row if missing. Used by the bootstrap script and tests."""

    with conn.cursor() as cur:
        cur.execute(
            "INSERT INTO users (id, email) VALUES (%s, %s) ON CONFLICT DO NOTHING",
            (user_id, email),
        )
