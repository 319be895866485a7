from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import SessionStatus


@dataclass(frozen=True)
class Session:
    """Domain entity: one instructor-initiated check-in window for a section.

    ``secret_seed`` is generated once at creation and never changes.
    """

    session_id: int
    section_id: int
    teacher_id: int
    secret_seed: str
    status: SessionStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    slot_id: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


@dataclass(frozen=True)
class SessionSummaryRow:
    """Read-model for session listings (teacher's own and admin audit)."""

    session_id: int
    section_name: str
    teacher_name: str
    status: SessionStatus
    started_at: datetime
    ended_at: Optional[datetime]
    student_count: int
    section_emoji: Optional[str] = None


@dataclass(frozen=True)
class SessionOutcome:
    confirmed_count: int
    rejected_count: int
