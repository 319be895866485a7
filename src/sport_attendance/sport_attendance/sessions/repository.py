from __future__ import annotations

from datetime import datetime
from typing import Collection, Optional, Protocol, Sequence

from ..core.enums import SessionStatus
from .model import Session, SessionOutcome, SessionSummaryRow


class SessionRepository(Protocol):
    """Storage contract for sessions.

    The set of active sessions is a query over this store, not process state,
    so several service instances can share it.
    """

    def get_by_id(self, session_id: int) -> Optional[Session]:
        raise NotImplementedError

    def get_active_for_teacher(self, teacher_id: int) -> Optional[Session]:
        raise NotImplementedError

    def list_active(self) -> Sequence[Session]:
        raise NotImplementedError

    def create_active(
        self,
        *,
        section_id: int,
        teacher_id: int,
        secret_seed: str,
        started_at: datetime,
        slot_id: Optional[int] = None,
    ) -> Session:
        """Insert an active session; ``ConflictError`` if the teacher already has one."""

        raise NotImplementedError

    def close(
        self,
        *,
        session_id: int,
        status: SessionStatus,
        ended_at: datetime,
        confirmed_student_ids: Collection[int],
    ) -> SessionOutcome:
        """Atomically settle every record of the session and move it out of ``active``.

        Records of listed students become confirmed (``confirmed_at = ended_at``),
        all others rejected. Raises ``InvalidStateError`` if the session is no
        longer active when the lock is taken.
        """

        raise NotImplementedError

    def list_for_teacher(self, teacher_id: int, *, limit: int) -> Sequence[SessionSummaryRow]:
        raise NotImplementedError

    def list_recent(self, *, limit: int) -> Sequence[SessionSummaryRow]:
        raise NotImplementedError

    def count_all(self) -> int:
        raise NotImplementedError

    def count_active(self) -> int:
        raise NotImplementedError
