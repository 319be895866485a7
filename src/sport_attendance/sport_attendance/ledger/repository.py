from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import AttendanceHistoryRow, AttendanceRecord


class LedgerRepository(Protocol):
    """Storage contract for the attendance ledger.

    ``insert_pending`` must be atomic: in one transaction it checks the session
    is still active, that ``expected_prev_hash`` is still the student's chain
    head (else ``StaleChainError``), and that no record exists for
    ``(session_id, student_id)`` (else ``DuplicateCheckinError``).
    """

    def get_last_for_student(self, student_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

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
        raise NotImplementedError

    def list_chain_for_student(self, student_id: int) -> Sequence[AttendanceRecord]:
        """All of the student's records ordered by ``checked_in_at`` ascending."""

        raise NotImplementedError

    def list_for_session(self, session_id: int) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_history_for_student(self, student_id: int) -> Sequence[AttendanceHistoryRow]:
        raise NotImplementedError

    def count_by_status(self, student_id: int) -> dict:
        raise NotImplementedError

    def count_all(self) -> int:
        raise NotImplementedError

    def count_confirmed_by_student(self) -> dict:
        """``{student_id: confirmed_count}`` for students with any confirmed record."""

        raise NotImplementedError

    def list_student_ids(self) -> Sequence[int]:
        """Ids of students holding at least one record, ascending."""

        raise NotImplementedError
