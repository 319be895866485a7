from __future__ import annotations

from datetime import datetime
from typing import Collection, Optional, Sequence

import mysql.connector

from ..core.enums import CheckinStatus, SessionStatus
from ..core.exceptions import ConflictError, InvalidStateError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import (
    db_cursor,
    db_transaction,
    duplicate_key_name,
    fetchall,
    fetchone,
    from_db_datetime,
    to_db_datetime,
)
from .model import Session, SessionOutcome, SessionSummaryRow
from .repository import SessionRepository

_SESSION_COLUMNS = "session_id, section_id, slot_id, teacher_id, secret_seed, status, started_at, ended_at"

_SUMMARY_SELECT = """
    SELECT s.session_id, s.status, s.started_at, s.ended_at,
           sec.name AS section_name, sec.emoji AS section_emoji, t.first_name, t.last_name,
           (SELECT COUNT(*) FROM sport_attendance a WHERE a.session_id = s.session_id) AS student_count
    FROM sport_sessions s
    JOIN sport_sections sec ON sec.section_id = s.section_id
    JOIN users t ON t.user_id = s.teacher_id
"""


def _to_session(r: dict) -> Session:
    return Session(
        session_id=int(r["session_id"]),
        section_id=int(r["section_id"]),
        teacher_id=int(r["teacher_id"]),
        secret_seed=r["secret_seed"],
        status=SessionStatus(r["status"]),
        started_at=from_db_datetime(r["started_at"]),
        ended_at=from_db_datetime(r.get("ended_at")),
        slot_id=int(r["slot_id"]) if r.get("slot_id") is not None else None,
    )


def _to_summary(r: dict) -> SessionSummaryRow:
    return SessionSummaryRow(
        session_id=int(r["session_id"]),
        section_name=r["section_name"],
        teacher_name=f"{r['first_name']} {r.get('last_name') or ''}".strip(),
        status=SessionStatus(r["status"]),
        started_at=from_db_datetime(r["started_at"]),
        ended_at=from_db_datetime(r.get("ended_at")),
        student_count=int(r["student_count"]),
        section_emoji=r.get("section_emoji"),
    )


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, session_id: int) -> Optional[Session]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_SESSION_COLUMNS} FROM sport_sessions WHERE session_id=%s", (int(session_id),))
            r = fetchone(cur)
            return _to_session(r) if r else None

    def get_active_for_teacher(self, teacher_id: int) -> Optional[Session]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_SESSION_COLUMNS} FROM sport_sessions WHERE teacher_id=%s AND status=%s LIMIT 1",
                (int(teacher_id), SessionStatus.ACTIVE.value),
            )
            r = fetchone(cur)
            return _to_session(r) if r else None

    def list_active(self) -> Sequence[Session]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_SESSION_COLUMNS} FROM sport_sessions WHERE status=%s ORDER BY session_id",
                (SessionStatus.ACTIVE.value,),
            )
            return [_to_session(r) for r in fetchall(cur)]

    def create_active(
        self,
        *,
        section_id: int,
        teacher_id: int,
        secret_seed: str,
        started_at: datetime,
        slot_id: Optional[int] = None,
    ) -> Session:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO sport_sessions(section_id, slot_id, teacher_id, secret_seed, status, started_at)
                    VALUES(%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        int(section_id),
                        slot_id,
                        int(teacher_id),
                        secret_seed,
                        SessionStatus.ACTIVE.value,
                        to_db_datetime(started_at),
                    ),
                )
                session_id = int(cur.lastrowid)
        except mysql.connector.IntegrityError as exc:
            if duplicate_key_name(exc) != "uq_active_teacher":
                raise
            existing = self.get_active_for_teacher(teacher_id)
            raise ConflictError(
                "You already have an active session",
                session_id=existing.session_id if existing else None,
            ) from exc

        return Session(
            session_id=session_id,
            section_id=int(section_id),
            teacher_id=int(teacher_id),
            secret_seed=secret_seed,
            status=SessionStatus.ACTIVE,
            started_at=started_at,
            slot_id=slot_id,
        )

    def close(
        self,
        *,
        session_id: int,
        status: SessionStatus,
        ended_at: datetime,
        confirmed_student_ids: Collection[int],
    ) -> SessionOutcome:
        ended = to_db_datetime(ended_at)
        with db_transaction(self._conn_factory) as (_, cur):
            # Same row lock as the check-in insert.
            cur.execute("SELECT status FROM sport_sessions WHERE session_id=%s FOR UPDATE", (int(session_id),))
            s = fetchone(cur)
            if not s or SessionStatus(s["status"]) != SessionStatus.ACTIVE:
                raise InvalidStateError("Session already finished")

            confirmed = 0
            ids = sorted(int(i) for i in confirmed_student_ids)
            if ids:
                placeholders = ",".join(["%s"] * len(ids))
                cur.execute(
                    f"""
                    UPDATE sport_attendance
                    SET status=%s, confirmed_at=%s
                    WHERE session_id=%s AND status=%s AND student_id IN ({placeholders})
                    """,
                    (CheckinStatus.CONFIRMED.value, ended, int(session_id), CheckinStatus.PENDING.value, *ids),
                )
                confirmed = int(cur.rowcount)

            cur.execute(
                """
                UPDATE sport_attendance
                SET status=%s, confirmed_at=NULL
                WHERE session_id=%s AND status=%s
                """,
                (CheckinStatus.REJECTED.value, int(session_id), CheckinStatus.PENDING.value),
            )
            rejected = int(cur.rowcount)

            cur.execute(
                "UPDATE sport_sessions SET status=%s, ended_at=%s WHERE session_id=%s",
                (status.value, ended, int(session_id)),
            )
            return SessionOutcome(confirmed_count=confirmed, rejected_count=rejected)

    def list_for_teacher(self, teacher_id: int, *, limit: int) -> Sequence[SessionSummaryRow]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SUMMARY_SELECT + " WHERE s.teacher_id=%s ORDER BY s.started_at DESC, s.session_id DESC LIMIT %s",
                (int(teacher_id), int(limit)),
            )
            return [_to_summary(r) for r in fetchall(cur)]

    def list_recent(self, *, limit: int) -> Sequence[SessionSummaryRow]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SUMMARY_SELECT + " ORDER BY s.started_at DESC, s.session_id DESC LIMIT %s",
                (int(limit),),
            )
            return [_to_summary(r) for r in fetchall(cur)]

    def count_all(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM sport_sessions")
            return int(fetchone(cur)["n"])

    def count_active(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM sport_sessions WHERE status=%s", (SessionStatus.ACTIVE.value,))
            return int(fetchone(cur)["n"])
