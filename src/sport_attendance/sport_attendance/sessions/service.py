from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..codes.oracle import generate_session_secret
from ..common.datetime_utils import Clock, now_utc
from ..core.enums import Role, SessionStatus
from ..core.exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from ..users.repository import DirectoryRepository
from .model import Session, SessionOutcome
from .repository import SessionRepository

logger = logging.getLogger(__name__)


class SessionStateMachine:
    """Lifecycle of a teaching session: ``active -> completed | cancelled``.

    Only the session's teacher or an admin (auditor) may end, cancel or watch
    a session. Settling the roster and leaving ``active`` happen in one
    repository transaction, so no check-in can land after the session closes.
    """

    def __init__(self, sessions: SessionRepository, directory: DirectoryRepository, *, clock: Clock = now_utc):
        self._sessions = sessions
        self._directory = directory
        self._clock = clock

    def _is_admin(self, user_id: int) -> bool:
        user = self._directory.get_user(int(user_id))
        return bool(user and user.role == Role.ADMIN)

    def _require_session(self, session_id: int) -> Session:
        session = self._sessions.get_by_id(int(session_id))
        if not session:
            raise NotFoundError("Session not found")
        return session

    def _authorize(self, session: Session, actor_id: int) -> None:
        if session.teacher_id == int(actor_id):
            return
        if self._is_admin(actor_id):
            return
        raise ForbiddenError("Access denied")

    def start(self, teacher_id: int, section_id: int, *, slot_id: Optional[int] = None) -> Session:
        section = self._directory.get_section(int(section_id))
        if not section:
            raise NotFoundError("Section not found")

        if not self._is_admin(teacher_id) and not self._directory.is_section_teacher(int(teacher_id), int(section_id)):
            raise ForbiddenError("You do not teach this section")

        active = self._sessions.get_active_for_teacher(int(teacher_id))
        if active:
            raise ConflictError("You already have an active session", session_id=active.session_id)

        session = self._sessions.create_active(
            section_id=int(section_id),
            teacher_id=int(teacher_id),
            secret_seed=generate_session_secret(),
            started_at=self._clock(),
            slot_id=slot_id,
        )
        logger.info("session %s started by teacher=%s section=%s", session.session_id, teacher_id, section_id)
        return session

    def get_for_actor(self, session_id: int, actor_id: int) -> Session:
        session = self._require_session(session_id)
        self._authorize(session, actor_id)
        return session

    def end(self, session_id: int, actor_id: int, confirmed_student_ids: Iterable[int]) -> SessionOutcome:
        session = self._require_session(session_id)
        self._authorize(session, actor_id)
        if not session.is_active:
            raise InvalidStateError("Session already finished")

        outcome = self._sessions.close(
            session_id=session.session_id,
            status=SessionStatus.COMPLETED,
            ended_at=self._clock(),
            confirmed_student_ids=frozenset(int(s) for s in confirmed_student_ids),
        )
        logger.info(
            "session %s completed by actor=%s confirmed=%s rejected=%s",
            session.session_id, actor_id, outcome.confirmed_count, outcome.rejected_count,
        )
        return outcome

    def cancel(self, session_id: int, actor_id: int) -> SessionOutcome:
        session = self._require_session(session_id)
        self._authorize(session, actor_id)
        if not session.is_active:
            raise InvalidStateError("Session already finished")

        outcome = self._sessions.close(
            session_id=session.session_id,
            status=SessionStatus.CANCELLED,
            ended_at=self._clock(),
            confirmed_student_ids=frozenset(),
        )
        logger.info("session %s cancelled by actor=%s rejected=%s", session.session_id, actor_id, outcome.rejected_count)
        return outcome
