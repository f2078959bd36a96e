from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, TypeVar

import pg8000.dbapi as pgapi

from app.core.config import db_configured, settings
from app.db.schema import ensure_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DB_LOCAL = threading.local()
_SCHEMA_READY = False
_SCHEMA_LOCK = threading.Lock()


def _connect():
    if not db_configured():
        raise RuntimeError("Database configuration is missing")
    return pgapi.connect(
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        user=settings.db_user,
        password=settings.db_password,
    )


def _ensure_schema(conn) -> None:
    global _SCHEMA_READY
    if _SCHEMA_READY:
        return
    with _SCHEMA_LOCK:
        if _SCHEMA_READY:
            return
        ensure_schema(conn)
        _SCHEMA_READY = True


def get_conn():
    """Per-thread autocommit connection for reads; reconnects if the old one died."""
    conn = getattr(_DB_LOCAL, "conn", None)
    if conn is None:
        conn = _connect()
        conn.autocommit = True
        _DB_LOCAL.conn = conn
    else:
        try:
            cur = conn.cursor()
            cur.execute("SELECT 1")
            cur.close()
        except pgapi.Error:
            logger.info("Read connection dropped, reconnecting")
            conn = _connect()
            conn.autocommit = True
            _DB_LOCAL.conn = conn
    if settings.auto_migrate:
        _ensure_schema(conn)
    return conn


def rows_as_dicts(cur) -> list[dict]:
    rows = cur.fetchall()
    columns = [col[0] for col in cur.description]
    return [dict(zip(columns, row)) for row in rows]


def fetch_all(sql: str, params: tuple | list = ()) -> list[dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, params)
    rows = rows_as_dicts(cur)
    cur.close()
    return rows


def fetch_one(sql: str, params: tuple | list = ()) -> Optional[dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, params)
    row = cur.fetchone()
    if row is None:
        cur.close()
        return None
    columns = [col[0] for col in cur.description]
    cur.close()
    return dict(zip(columns, row))


def run_transaction(handler: Callable[..., T]) -> T:
    """Run ``handler(conn)`` in its own transaction.

    Any exception raised by the handler, business errors included, rolls the
    whole transaction back before it propagates.
    """
    conn = _connect()
    try:
        conn.autocommit = False
        if settings.auto_migrate:
            _ensure_schema(conn)
        result = handler(conn)
        conn.commit()
        return result
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
