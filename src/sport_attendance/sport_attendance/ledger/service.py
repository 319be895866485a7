from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Sequence

from ..common.datetime_utils import ONE_MILLISECOND, Clock, as_utc, now_utc, truncate_to_millis
from ..core.constants import APPEND_MAX_ATTEMPTS, STUDENT_LOCK_STRIPES
from ..core.exceptions import LedgerBusyError, StaleChainError
from .hashing import compute_attendance_hash, verify_chain
from .model import AttendanceRecord, ChainVerification
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


class _StudentLocks:
    """Fixed pool of locks; a student always maps to the same stripe.

    Two students may share a stripe, which only costs parallelism.
    """

    def __init__(self, stripes: int = STUDENT_LOCK_STRIPES):
        self._locks = [threading.Lock() for _ in range(int(stripes))]

    def for_student(self, student_id: int) -> threading.Lock:
        return self._locks[int(student_id) % len(self._locks)]


class AttendanceLedger:
    """Sole writer of attendance hashes.

    Appends are serialized per student inside this process; across processes
    the repository's compare-and-insert on the chain head catches races and
    the append is retried against the new head.
    """

    def __init__(self, records: LedgerRepository, *, clock: Clock = now_utc, max_attempts: int = APPEND_MAX_ATTEMPTS):
        self._records = records
        self._clock = clock
        self._max_attempts = int(max_attempts)
        self._locks = _StudentLocks()

    def append(self, student_id: int, session_id: int, now: datetime | None = None) -> AttendanceRecord:
        requested_at = truncate_to_millis(now or self._clock())

        with self._locks.for_student(student_id):
            for attempt in range(1, self._max_attempts + 1):
                last = self._records.get_last_for_student(student_id)
                prev_hash = last.hash if last else None
                checked_in_at = requested_at
                if last and checked_in_at <= as_utc(last.checked_in_at):
                    # Chain order must equal timestamp order.
                    checked_in_at = truncate_to_millis(last.checked_in_at) + ONE_MILLISECOND

                record_hash = compute_attendance_hash(student_id, session_id, checked_in_at, prev_hash)
                try:
                    record = self._records.insert_pending(
                        session_id=int(session_id),
                        student_id=int(student_id),
                        checked_in_at=checked_in_at,
                        hash=record_hash,
                        prev_hash=prev_hash,
                        expected_prev_hash=prev_hash,
                    )
                except StaleChainError:
                    logger.info(
                        "chain head moved for student=%s (attempt %s/%s), retrying",
                        student_id, attempt, self._max_attempts,
                    )
                    continue

                logger.debug("appended record=%s student=%s session=%s", record.record_id, student_id, session_id)
                return record

        logger.warning("gave up appending for student=%s after %s attempts", student_id, self._max_attempts)
        raise LedgerBusyError("Attendance ledger is busy, please try again")

    def chain_for_student(self, student_id: int) -> Sequence[AttendanceRecord]:
        return self._records.list_chain_for_student(int(student_id))

    def verify_chain(self, records: Sequence[AttendanceRecord]) -> ChainVerification:
        return verify_chain(records)

    def audit(self, student_id: int) -> ChainVerification:
        result = verify_chain(self.chain_for_student(student_id))
        if not result.valid:
            logger.warning(
                "hash chain broken for student=%s at index=%s record=%s",
                student_id, result.broken_at_index, result.broken_at_id,
            )
        return result

    def audit_all(self) -> dict[int, ChainVerification]:
        """Audit every student that holds records."""
        return {student_id: self.audit(student_id) for student_id in self._records.list_student_ids()}
