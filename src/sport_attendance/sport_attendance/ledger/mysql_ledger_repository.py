from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..core.constants import GENESIS_HASH
from ..core.enums import CheckinStatus, SessionStatus
from ..core.exceptions import DuplicateCheckinError, InvalidStateError, StaleChainError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import (
    db_cursor,
    db_transaction,
    duplicate_key_name,
    fetchall,
    fetchone,
    from_db_datetime,
    is_lock_conflict,
    to_db_datetime,
)
from .model import AttendanceHistoryRow, AttendanceRecord
from .repository import LedgerRepository

_RECORD_COLUMNS = "record_id, session_id, student_id, checked_in_at, status, confirmed_at, hash, prev_hash"


def _to_record(r: dict) -> AttendanceRecord:
    return AttendanceRecord(
        record_id=int(r["record_id"]),
        session_id=int(r["session_id"]),
        student_id=int(r["student_id"]),
        checked_in_at=from_db_datetime(r["checked_in_at"]),
        status=CheckinStatus(r["status"]),
        hash=r["hash"],
        prev_hash=r.get("prev_hash"),
        confirmed_at=from_db_datetime(r.get("confirmed_at")),
    )


class MySQLLedgerRepository(LedgerRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_last_for_student(self, student_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM sport_attendance
                WHERE student_id=%s
                ORDER BY checked_in_at DESC, record_id DESC
                LIMIT 1
                """,
                (int(student_id),),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM sport_attendance WHERE session_id=%s AND student_id=%s",
                (int(session_id), int(student_id)),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def insert_pending(
        self,
        *,
        session_id: int,
        student_id: int,
        checked_in_at: datetime,
        hash: str,
        prev_hash: Optional[str],
        expected_prev_hash: Optional[str],
    ) -> AttendanceRecord:
        try:
            return self._insert_pending(
                session_id=session_id,
                student_id=student_id,
                checked_in_at=checked_in_at,
                hash=hash,
                prev_hash=prev_hash,
                expected_prev_hash=expected_prev_hash,
            )
        except mysql.connector.DatabaseError as exc:
            if is_lock_conflict(exc):
                raise StaleChainError(f"lock conflict on chain of student {student_id}") from exc
            raise

    def _insert_pending(self, *, session_id, student_id, checked_in_at, hash, prev_hash, expected_prev_hash):
        with db_transaction(self._conn_factory) as (_, cur):
            # Locks the session row: end/cancel take the same lock.
            cur.execute("SELECT status FROM sport_sessions WHERE session_id=%s FOR UPDATE", (int(session_id),))
            s = fetchone(cur)
            if not s or SessionStatus(s["status"]) != SessionStatus.ACTIVE:
                raise InvalidStateError("Session already finished")

            # The student's users row serializes appends across processes; a
            # head read alone only takes gap locks while the chain is empty.
            cur.execute("SELECT user_id FROM users WHERE user_id=%s FOR UPDATE", (int(student_id),))
            fetchone(cur)

            cur.execute(
                """
                SELECT hash FROM sport_attendance
                WHERE student_id=%s
                ORDER BY checked_in_at DESC, record_id DESC
                LIMIT 1
                FOR UPDATE
                """,
                (int(student_id),),
            )
            head = fetchone(cur)
            if (head["hash"] if head else None) != expected_prev_hash:
                raise StaleChainError(f"chain head of student {student_id} moved")

            try:
                cur.execute(
                    """
                    INSERT INTO sport_attendance(session_id, student_id, checked_in_at, status, hash, prev_hash, chain_link)
                    VALUES(%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        int(session_id),
                        int(student_id),
                        to_db_datetime(checked_in_at),
                        CheckinStatus.PENDING.value,
                        hash,
                        prev_hash,
                        prev_hash or GENESIS_HASH,
                    ),
                )
            except mysql.connector.IntegrityError as exc:
                key = duplicate_key_name(exc)
                if key == "uq_session_student":
                    raise DuplicateCheckinError("You have already checked in to this session") from exc
                if key == "uq_student_chain":
                    raise StaleChainError(f"chain head of student {student_id} moved") from exc
                raise

            return AttendanceRecord(
                record_id=int(cur.lastrowid),
                session_id=int(session_id),
                student_id=int(student_id),
                checked_in_at=checked_in_at,
                status=CheckinStatus.PENDING,
                hash=hash,
                prev_hash=prev_hash,
            )

    def list_chain_for_student(self, student_id: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM sport_attendance
                WHERE student_id=%s
                ORDER BY checked_in_at ASC, record_id ASC
                """,
                (int(student_id),),
            )
            return [_to_record(r) for r in fetchall(cur)]

    def list_for_session(self, session_id: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM sport_attendance
                WHERE session_id=%s
                ORDER BY checked_in_at ASC, record_id ASC
                """,
                (int(session_id),),
            )
            return [_to_record(r) for r in fetchall(cur)]

    def list_history_for_student(self, student_id: int) -> Sequence[AttendanceHistoryRow]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT a.record_id, a.session_id, a.status, a.checked_in_at, a.confirmed_at,
                       sec.name AS section_name, sec.emoji AS section_emoji, t.first_name, t.last_name
                FROM sport_attendance a
                JOIN sport_sessions s ON s.session_id = a.session_id
                JOIN sport_sections sec ON sec.section_id = s.section_id
                JOIN users t ON t.user_id = s.teacher_id
                WHERE a.student_id=%s
                ORDER BY a.checked_in_at DESC, a.record_id DESC
                """,
                (int(student_id),),
            )
            return [
                AttendanceHistoryRow(
                    record_id=int(r["record_id"]),
                    session_id=int(r["session_id"]),
                    section_name=r["section_name"],
                    teacher_name=f"{r['first_name']} {r.get('last_name') or ''}".strip(),
                    status=CheckinStatus(r["status"]),
                    checked_in_at=from_db_datetime(r["checked_in_at"]),
                    confirmed_at=from_db_datetime(r.get("confirmed_at")),
                    section_emoji=r.get("section_emoji"),
                )
                for r in fetchall(cur)
            ]

    def count_by_status(self, student_id: int) -> dict:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT status, COUNT(*) AS n FROM sport_attendance WHERE student_id=%s GROUP BY status",
                (int(student_id),),
            )
            return {CheckinStatus(r["status"]): int(r["n"]) for r in fetchall(cur)}

    def count_all(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM sport_attendance")
            return int(fetchone(cur)["n"])

    def count_confirmed_by_student(self) -> dict:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT student_id, COUNT(*) AS n FROM sport_attendance WHERE status=%s GROUP BY student_id",
                (CheckinStatus.CONFIRMED.value,),
            )
            return {int(r["student_id"]): int(r["n"]) for r in fetchall(cur)}

    def list_student_ids(self) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT DISTINCT student_id FROM sport_attendance ORDER BY student_id")
            return [int(r["student_id"]) for r in fetchall(cur)]
