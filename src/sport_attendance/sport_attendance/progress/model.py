from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Progress:
    confirmed: int
    pending: int
    rejected: int
    required: int
    percentage: int
    completed: bool

    @property
    def total(self) -> int:
        """Classes that still count: confirmed plus not yet rejected."""
        return self.confirmed + self.pending

    def to_dict(self) -> dict:
        out = asdict(self)
        out["total"] = self.total
        return out


@dataclass(frozen=True)
class AttendanceStats:
    total_sessions: int
    active_sessions: int
    total_attendances: int
    confirmed_attendances: int
    teacher_count: int
    students_with_attendance: int
    completed_students: int
    required_classes: int

    def to_dict(self) -> dict:
        return asdict(self)
