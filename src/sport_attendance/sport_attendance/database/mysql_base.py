from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import mysql.connector
from mysql.connector import errorcode

from ..common.datetime_utils import as_utc
from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def db_transaction(conn_factory: DatabaseConnection):
    """Like ``db_cursor`` but opens an explicit transaction for ``FOR UPDATE`` reads."""
    conn = conn_factory.connect()
    try:
        conn.start_transaction()
        cur = conn.cursor(dictionary=True)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def to_db_datetime(value: Optional[datetime]) -> Optional[datetime]:
    """MySQL DATETIME has no zone; store naive UTC."""
    if value is None:
        return None
    return as_utc(value).replace(tzinfo=None)


def from_db_datetime(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value)


def duplicate_key_name(exc: mysql.connector.IntegrityError) -> Optional[str]:
    """Name of the unique key a duplicate-entry error hit, e.g. ``uq_session_student``."""
    if exc.errno != errorcode.ER_DUP_ENTRY:
        return None
    message = str(exc.msg or "")
    marker = "for key '"
    if marker not in message:
        return None
    key = message.split(marker, 1)[1].rstrip("'")
    return key.rsplit(".", 1)[-1]


def is_lock_conflict(exc: mysql.connector.Error) -> bool:
    """InnoDB aborted or timed out the transaction over a row/gap lock; safe to retry."""
    return exc.errno in (errorcode.ER_LOCK_DEADLOCK, errorcode.ER_LOCK_WAIT_TIMEOUT)
