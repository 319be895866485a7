from __future__ import annotations

from typing import Iterable, Optional

from ..checkin.service import CheckinCoordinator
from ..codes.oracle import generate_code, seconds_until_rotate
from ..common.datetime_utils import Clock, iso_timestamp, now_utc, to_epoch_millis
from ..core.constants import (
    ADMIN_SESSIONS_LIMIT,
    MY_SESSIONS_LIMIT,
    RECENT_ATTENDANCE_LIMIT,
    STUDENT_SEARCH_LIMIT,
    STUDENT_SEARCH_MIN_CHARS,
)
from ..core.enums import CheckinStatus
from ..core.exceptions import InvalidStateError, ValidationError
from ..ledger.repository import LedgerRepository
from ..ledger.service import AttendanceLedger
from ..progress.service import AttendanceStatsService, ProgressAggregator
from ..sessions.model import Session, SessionSummaryRow
from ..sessions.repository import SessionRepository
from ..sessions.service import SessionStateMachine
from ..users.repository import DirectoryRepository


def _iso(value) -> Optional[str]:
    return iso_timestamp(value) if value else None


class AttendancePortal:
    """Operations exposed to the HTTP layer and polling UI.

    Each method returns a plain dict ready for JSON. Domain errors propagate to
    the caller, which turns them into typed error responses.
    """

    def __init__(
        self,
        *,
        sessions: SessionRepository,
        records: LedgerRepository,
        directory: DirectoryRepository,
        state_machine: SessionStateMachine,
        coordinator: CheckinCoordinator,
        ledger: AttendanceLedger,
        progress: ProgressAggregator,
        stats: AttendanceStatsService,
        clock: Clock = now_utc,
    ):
        self._sessions = sessions
        self._records = records
        self._directory = directory
        self._state_machine = state_machine
        self._coordinator = coordinator
        self._ledger = ledger
        self._progress = progress
        self._stats = stats
        self._clock = clock

    def _section_fields(self, section_id: int) -> dict:
        section = self._directory.get_section(section_id)
        return {
            "section": section.name if section else "",
            "section_emoji": section.emoji if section else None,
        }

    def _code_payload(self, session: Session) -> dict:
        now_ms = to_epoch_millis(self._clock())
        return {
            "code": generate_code(session.secret_seed, now_ms),
            "seconds_until_rotate": seconds_until_rotate(now_ms),
        }

    def _roster(self, session_id: int) -> list[dict]:
        roster = []
        for record in self._records.list_for_session(session_id):
            student = self._directory.get_user(record.student_id)
            roster.append(
                {
                    "id": record.student_id,
                    "first_name": student.first_name if student else None,
                    "last_name": student.last_name if student else None,
                    "username": student.username if student else None,
                    "status": record.status.value,
                    "checked_in_at": iso_timestamp(record.checked_in_at),
                }
            )
        return roster

    @staticmethod
    def _summary(row: SessionSummaryRow) -> dict:
        return {
            "id": row.session_id,
            "section": row.section_name,
            "section_emoji": row.section_emoji,
            "teacher": row.teacher_name,
            "status": row.status.value,
            "started_at": _iso(row.started_at),
            "ended_at": _iso(row.ended_at),
            "student_count": row.student_count,
        }

    def start_session(self, teacher_id: int, section_id: int, *, slot_id: Optional[int] = None) -> dict:
        session = self._state_machine.start(teacher_id, section_id, slot_id=slot_id)
        return {
            "session_id": session.session_id,
            **self._section_fields(session.section_id),
            **self._code_payload(session),
            "started_at": _iso(session.started_at),
        }

    def get_live_code(self, session_id: int, actor_id: int) -> dict:
        session = self._state_machine.get_for_actor(session_id, actor_id)
        if not session.is_active:
            raise InvalidStateError("Session already finished")
        roster = self._roster(session.session_id)
        return {
            "session_id": session.session_id,
            **self._section_fields(session.section_id),
            **self._code_payload(session),
            "status": session.status.value,
            "started_at": _iso(session.started_at),
            "roster": roster,
            "student_count": len(roster),
        }

    def checkin(self, code: str, student_id: int) -> dict:
        result = self._coordinator.checkin(code, student_id)
        section = self._section_fields(result.session.section_id)
        return {
            "session_name": section["section"],
            "section_emoji": section["section_emoji"],
            "status": result.record.status.value,
            "checked_in_at": iso_timestamp(result.record.checked_in_at),
            "progress": self._progress.progress(student_id).to_dict(),
        }

    def end_session(self, session_id: int, actor_id: int, confirmed_student_ids: Iterable[int]) -> dict:
        outcome = self._state_machine.end(session_id, actor_id, confirmed_student_ids)
        return {"confirmed_count": outcome.confirmed_count, "rejected_count": outcome.rejected_count}

    def cancel_session(self, session_id: int, actor_id: int) -> dict:
        self._state_machine.cancel(session_id, actor_id)
        return {"ok": True}

    def get_progress(self, student_id: int) -> dict:
        return self._progress.progress(student_id).to_dict()

    def audit_chain(self, student_id: int) -> dict:
        result = self._ledger.audit(student_id).to_dict()
        student = self._directory.get_user(student_id)
        result["student"] = student.display_name if student else "Unknown"
        result["username"] = student.username if student else None
        return result

    def my_sessions(self, teacher_id: int) -> list[dict]:
        return [self._summary(r) for r in self._sessions.list_for_teacher(teacher_id, limit=MY_SESSIONS_LIMIT)]

    def my_attendance(self, student_id: int) -> list[dict]:
        return [
            {
                "id": r.record_id,
                "session_id": r.session_id,
                "section": r.section_name,
                "section_emoji": r.section_emoji,
                "teacher": r.teacher_name,
                "status": r.status.value,
                "checked_in_at": _iso(r.checked_in_at),
                "confirmed_at": _iso(r.confirmed_at),
            }
            for r in self._records.list_history_for_student(student_id)
        ]

    def admin_sessions(self) -> list[dict]:
        return [self._summary(r) for r in self._sessions.list_recent(limit=ADMIN_SESSIONS_LIMIT)]

    def admin_stats(self) -> dict:
        return self._stats.stats().to_dict()

    def student_search(self, query: Optional[str]) -> list[dict]:
        """Admin lookup of students' progress by name or username."""
        query = (query or "").strip()
        if len(query) < STUDENT_SEARCH_MIN_CHARS:
            raise ValidationError(f"Search query must be at least {STUDENT_SEARCH_MIN_CHARS} characters")

        results = []
        for user in self._directory.search_users(query, limit=STUDENT_SEARCH_LIMIT):
            progress = self._progress.progress(user.user_id)
            recent = [
                r for r in self._records.list_history_for_student(user.user_id)
                if r.status == CheckinStatus.CONFIRMED
            ][:RECENT_ATTENDANCE_LIMIT]
            results.append(
                {
                    "id": user.user_id,
                    "first_name": user.first_name,
                    "last_name": user.last_name,
                    "username": user.username,
                    "confirmed_classes": progress.confirmed,
                    "required": progress.required,
                    "percentage": progress.percentage,
                    "recent_attendance": [
                        {"section": r.section_name, "section_emoji": r.section_emoji, "date": _iso(r.checked_in_at)}
                        for r in recent
                    ],
                }
            )
        return results

    def live_code_text(self, session_id: int, actor_id: int) -> str:
        """Current code only, for rendering on the instructor screen."""
        session = self._state_machine.get_for_actor(session_id, actor_id)
        if not session.is_active:
            raise InvalidStateError("Session already finished")
        return self._code_payload(session)["code"]
