"""In-memory store implementing the repository protocols.

Used by the test suite and by ``STORAGE_BACKEND=memory``. All tables live on
one ``InMemoryDatabase`` and every read-check-write runs under its lock, which
gives the same atomicity the MySQL repositories get from transactions.
"""

from __future__ import annotations

import dataclasses
import threading
from collections import Counter
from datetime import datetime
from typing import Collection, Optional, Sequence

from ..common.datetime_utils import as_utc
from ..core.enums import CheckinStatus, Role, SessionStatus
from ..core.exceptions import ConflictError, DuplicateCheckinError, InvalidStateError, StaleChainError
from ..ledger.model import AttendanceHistoryRow, AttendanceRecord
from ..sessions.model import Session, SessionOutcome, SessionSummaryRow
from ..users.model import Section, User


class InMemoryDatabase:
    def __init__(self):
        self.lock = threading.RLock()
        self.users: dict[int, User] = {}
        self.sections: dict[int, Section] = {}
        self.section_teachers: set[tuple[int, int]] = set()
        self.sessions: dict[int, Session] = {}
        self.records: dict[int, AttendanceRecord] = {}
        self._next_session_id = 1
        self._next_record_id = 1

    def next_session_id(self) -> int:
        sid = self._next_session_id
        self._next_session_id += 1
        return sid

    def next_record_id(self) -> int:
        rid = self._next_record_id
        self._next_record_id += 1
        return rid

    # Directory seeding (registration is handled outside this subsystem)

    def add_user(self, user_id: int, first_name: str, *, role: Role = Role.STUDENT, last_name=None, username=None) -> User:
        user = User(user_id=int(user_id), first_name=first_name, last_name=last_name, username=username, role=role)
        with self.lock:
            self.users[user.user_id] = user
        return user

    def add_section(self, section_id: int, name: str, *, emoji=None) -> Section:
        section = Section(section_id=int(section_id), name=name, emoji=emoji)
        with self.lock:
            self.sections[section.section_id] = section
        return section

    def assign_teacher(self, user_id: int, section_id: int) -> None:
        with self.lock:
            self.section_teachers.add((int(user_id), int(section_id)))


def _chain_key(record: AttendanceRecord):
    return (as_utc(record.checked_in_at), record.record_id)


class InMemoryDirectoryRepository:
    def __init__(self, db: InMemoryDatabase):
        self._db = db

    def get_user(self, user_id: int) -> Optional[User]:
        return self._db.users.get(int(user_id))

    def get_section(self, section_id: int) -> Optional[Section]:
        return self._db.sections.get(int(section_id))

    def is_section_teacher(self, user_id: int, section_id: int) -> bool:
        return (int(user_id), int(section_id)) in self._db.section_teachers

    def count_teachers(self) -> int:
        return len(self._db.section_teachers)

    def search_users(self, query: str, *, limit: int) -> Sequence[User]:
        needle = query.casefold()
        with self._db.lock:
            users = sorted(self._db.users.values(), key=lambda u: u.user_id)
        matches = [
            u for u in users
            if any(needle in (field or "").casefold() for field in (u.first_name, u.last_name, u.username))
        ]
        return matches[: int(limit)]


class InMemorySessionRepository:
    def __init__(self, db: InMemoryDatabase):
        self._db = db

    def get_by_id(self, session_id: int) -> Optional[Session]:
        return self._db.sessions.get(int(session_id))

    def get_active_for_teacher(self, teacher_id: int) -> Optional[Session]:
        with self._db.lock:
            for s in self._db.sessions.values():
                if s.teacher_id == int(teacher_id) and s.status == SessionStatus.ACTIVE:
                    return s
        return None

    def list_active(self) -> Sequence[Session]:
        with self._db.lock:
            items = [s for s in self._db.sessions.values() if s.status == SessionStatus.ACTIVE]
        items.sort(key=lambda s: s.session_id)
        return items

    def create_active(
        self,
        *,
        section_id: int,
        teacher_id: int,
        secret_seed: str,
        started_at: datetime,
        slot_id: Optional[int] = None,
    ) -> Session:
        with self._db.lock:
            existing = self.get_active_for_teacher(teacher_id)
            if existing:
                raise ConflictError("You already have an active session", session_id=existing.session_id)
            session = Session(
                session_id=self._db.next_session_id(),
                section_id=int(section_id),
                teacher_id=int(teacher_id),
                secret_seed=secret_seed,
                status=SessionStatus.ACTIVE,
                started_at=started_at,
                slot_id=slot_id,
            )
            self._db.sessions[session.session_id] = session
            return session

    def close(
        self,
        *,
        session_id: int,
        status: SessionStatus,
        ended_at: datetime,
        confirmed_student_ids: Collection[int],
    ) -> SessionOutcome:
        with self._db.lock:
            session = self._db.sessions.get(int(session_id))
            if not session or session.status != SessionStatus.ACTIVE:
                raise InvalidStateError("Session already finished")

            confirmed = rejected = 0
            for rid, rec in list(self._db.records.items()):
                if rec.session_id != session.session_id:
                    continue
                if rec.student_id in confirmed_student_ids:
                    self._db.records[rid] = dataclasses.replace(rec, status=CheckinStatus.CONFIRMED, confirmed_at=ended_at)
                    confirmed += 1
                else:
                    self._db.records[rid] = dataclasses.replace(rec, status=CheckinStatus.REJECTED, confirmed_at=None)
                    rejected += 1

            self._db.sessions[session.session_id] = dataclasses.replace(session, status=status, ended_at=ended_at)
            return SessionOutcome(confirmed_count=confirmed, rejected_count=rejected)

    def _summaries(self, sessions) -> list[SessionSummaryRow]:
        counts = Counter(r.session_id for r in self._db.records.values())
        rows = []
        for s in sessions:
            section = self._db.sections.get(s.section_id)
            teacher = self._db.users.get(s.teacher_id)
            rows.append(
                SessionSummaryRow(
                    session_id=s.session_id,
                    section_name=section.name if section else "",
                    teacher_name=teacher.display_name if teacher else "",
                    status=s.status,
                    started_at=s.started_at,
                    ended_at=s.ended_at,
                    student_count=counts.get(s.session_id, 0),
                    section_emoji=section.emoji if section else None,
                )
            )
        return rows

    def list_for_teacher(self, teacher_id: int, *, limit: int) -> Sequence[SessionSummaryRow]:
        with self._db.lock:
            items = [s for s in self._db.sessions.values() if s.teacher_id == int(teacher_id)]
            items.sort(key=lambda s: (as_utc(s.started_at), s.session_id), reverse=True)
            return self._summaries(items[: int(limit)])

    def list_recent(self, *, limit: int) -> Sequence[SessionSummaryRow]:
        with self._db.lock:
            items = sorted(self._db.sessions.values(), key=lambda s: (as_utc(s.started_at), s.session_id), reverse=True)
            return self._summaries(items[: int(limit)])

    def count_all(self) -> int:
        return len(self._db.sessions)

    def count_active(self) -> int:
        return len(self.list_active())


class InMemoryLedgerRepository:
    def __init__(self, db: InMemoryDatabase):
        self._db = db

    def _for_student(self, student_id: int) -> list[AttendanceRecord]:
        items = [r for r in self._db.records.values() if r.student_id == int(student_id)]
        items.sort(key=_chain_key)
        return items

    def get_last_for_student(self, student_id: int) -> Optional[AttendanceRecord]:
        with self._db.lock:
            items = self._for_student(student_id)
        return items[-1] if items else None

    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        with self._db.lock:
            for r in self._db.records.values():
                if r.session_id == int(session_id) and r.student_id == int(student_id):
                    return r
        return None

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
        with self._db.lock:
            session = self._db.sessions.get(int(session_id))
            if not session or session.status != SessionStatus.ACTIVE:
                raise InvalidStateError("Session already finished")
            if self.get_for_session_and_student(session_id, student_id):
                raise DuplicateCheckinError("You have already checked in to this session")

            chain = self._for_student(student_id)
            head = chain[-1].hash if chain else None
            if head != expected_prev_hash:
                raise StaleChainError(f"chain head of student {student_id} moved")

            record = AttendanceRecord(
                record_id=self._db.next_record_id(),
                session_id=int(session_id),
                student_id=int(student_id),
                checked_in_at=checked_in_at,
                status=CheckinStatus.PENDING,
                hash=hash,
                prev_hash=prev_hash,
            )
            self._db.records[record.record_id] = record
            return record

    def list_chain_for_student(self, student_id: int) -> Sequence[AttendanceRecord]:
        with self._db.lock:
            return self._for_student(student_id)

    def list_for_session(self, session_id: int) -> Sequence[AttendanceRecord]:
        with self._db.lock:
            items = [r for r in self._db.records.values() if r.session_id == int(session_id)]
        items.sort(key=_chain_key)
        return items

    def list_history_for_student(self, student_id: int) -> Sequence[AttendanceHistoryRow]:
        with self._db.lock:
            rows = []
            for r in reversed(self._for_student(student_id)):
                session = self._db.sessions.get(r.session_id)
                section = self._db.sections.get(session.section_id) if session else None
                teacher = self._db.users.get(session.teacher_id) if session else None
                rows.append(
                    AttendanceHistoryRow(
                        record_id=r.record_id,
                        session_id=r.session_id,
                        section_name=section.name if section else "",
                        teacher_name=teacher.display_name if teacher else "",
                        status=r.status,
                        checked_in_at=r.checked_in_at,
                        confirmed_at=r.confirmed_at,
                        section_emoji=section.emoji if section else None,
                    )
                )
            return rows

    def count_by_status(self, student_id: int) -> dict:
        with self._db.lock:
            return dict(Counter(r.status for r in self._db.records.values() if r.student_id == int(student_id)))

    def count_all(self) -> int:
        return len(self._db.records)

    def count_confirmed_by_student(self) -> dict:
        with self._db.lock:
            return dict(Counter(r.student_id for r in self._db.records.values() if r.status == CheckinStatus.CONFIRMED))

    def list_student_ids(self) -> Sequence[int]:
        with self._db.lock:
            return sorted({r.student_id for r in self._db.records.values()})
