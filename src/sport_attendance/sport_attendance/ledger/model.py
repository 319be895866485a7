from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import CheckinStatus
from ..core.exceptions import ChainBrokenError


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one check-in of a student to a session.

    ``hash``/``prev_hash`` are written once by the ledger; only ``status`` and
    ``confirmed_at`` change afterwards, when the session ends or is cancelled.
    """

    record_id: int
    session_id: int
    student_id: int
    checked_in_at: datetime
    status: CheckinStatus
    hash: str
    prev_hash: Optional[str]
    confirmed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ChainVerification:
    valid: bool
    total_records: int
    broken_at_index: Optional[int] = None
    broken_at_id: Optional[int] = None

    def to_dict(self) -> dict:
        out = {"valid": self.valid, "total_records": self.total_records}
        if not self.valid:
            out["broken_at_index"] = self.broken_at_index
            out["broken_at_id"] = self.broken_at_id
        return out

    def raise_for_break(self) -> None:
        if not self.valid:
            raise ChainBrokenError(
                f"Chain broken at record {self.broken_at_id} (index {self.broken_at_index})",
                broken_at_index=int(self.broken_at_index),
                broken_at_id=int(self.broken_at_id),
            )


@dataclass(frozen=True)
class AttendanceHistoryRow:
    """Read-model for a student's history listing."""

    record_id: int
    session_id: int
    section_name: str
    teacher_name: str
    status: CheckinStatus
    checked_in_at: datetime
    confirmed_at: Optional[datetime] = None
    section_emoji: Optional[str] = None
