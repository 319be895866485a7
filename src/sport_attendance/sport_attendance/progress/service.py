from __future__ import annotations

import math

from ..core.constants import REQUIRED_CLASSES
from ..core.enums import CheckinStatus
from ..ledger.repository import LedgerRepository
from ..sessions.repository import SessionRepository
from ..users.repository import DirectoryRepository
from .model import AttendanceStats, Progress


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ProgressAggregator:
    """Read-only summaries over the ledger."""

    def __init__(self, records: LedgerRepository, *, required: int = REQUIRED_CLASSES):
        if int(required) <= 0:
            raise ValueError("required must be positive")
        self._records = records
        self._required = int(required)

    @property
    def required(self) -> int:
        return self._required

    def progress(self, student_id: int) -> Progress:
        counts = self._records.count_by_status(int(student_id))
        confirmed = int(counts.get(CheckinStatus.CONFIRMED, 0))
        pending = int(counts.get(CheckinStatus.PENDING, 0))
        rejected = int(counts.get(CheckinStatus.REJECTED, 0))

        return Progress(
            confirmed=confirmed,
            pending=pending,
            rejected=rejected,
            required=self._required,
            percentage=round_half_up(confirmed / self._required * 100),
            completed=confirmed >= self._required,
        )


class AttendanceStatsService:
    def __init__(
        self,
        sessions: SessionRepository,
        records: LedgerRepository,
        directory: DirectoryRepository,
        *,
        required: int = REQUIRED_CLASSES,
    ):
        self._sessions = sessions
        self._records = records
        self._directory = directory
        self._required = int(required)

    def stats(self) -> AttendanceStats:
        confirmed_by_student = self._records.count_confirmed_by_student()
        return AttendanceStats(
            total_sessions=self._sessions.count_all(),
            active_sessions=self._sessions.count_active(),
            total_attendances=self._records.count_all(),
            confirmed_attendances=sum(confirmed_by_student.values()),
            teacher_count=self._directory.count_teachers(),
            students_with_attendance=len(confirmed_by_student),
            completed_students=sum(1 for n in confirmed_by_student.values() if n >= self._required),
            required_classes=self._required,
        )
