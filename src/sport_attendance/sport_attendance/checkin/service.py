from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ..codes.oracle import verify_code
from ..common.datetime_utils import Clock, now_utc, to_epoch_millis
from ..common.validators import require_code
from ..core.exceptions import DuplicateCheckinError, InvalidCodeError, SelfCheckinError
from ..ledger.model import AttendanceRecord
from ..ledger.repository import LedgerRepository
from ..ledger.service import AttendanceLedger
from ..sessions.model import Session
from ..sessions.repository import SessionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckinResult:
    session: Session
    record: AttendanceRecord


class CheckinCoordinator:
    def __init__(
        self,
        sessions: SessionRepository,
        records: LedgerRepository,
        ledger: AttendanceLedger,
        *,
        clock: Clock = now_utc,
    ):
        self._sessions = sessions
        self._records = records
        self._ledger = ledger
        self._clock = clock

    def resolve_session(self, code: str, now: datetime) -> Session:
        """First active session whose current or previous code matches."""
        now_ms = to_epoch_millis(now)
        for session in self._sessions.list_active():
            if verify_code(session.secret_seed, code, now_ms):
                return session
        raise InvalidCodeError("Wrong or expired code")

    def checkin(self, code: str, student_id: int, now: datetime | None = None) -> CheckinResult:
        now = now or self._clock()
        code = require_code(code)
        session = self.resolve_session(code, now)

        if session.teacher_id == int(student_id):
            raise SelfCheckinError("A teacher cannot check in to their own session")

        if self._records.get_for_session_and_student(session.session_id, int(student_id)):
            raise DuplicateCheckinError("You have already checked in to this session")

        # The repository re-checks uniqueness and that the session is still
        # active inside the insert transaction.
        record = self._ledger.append(int(student_id), session.session_id, now)
        logger.info("student=%s checked in to session=%s record=%s", student_id, session.session_id, record.record_id)
        return CheckinResult(session=session, record=record)
