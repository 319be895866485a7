from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import iso_timestamp
from ..core.constants import GENESIS_HASH
from .model import AttendanceRecord, ChainVerification


def compute_attendance_hash(
    student_id: int,
    session_id: int,
    checked_in_at: datetime,
    prev_hash: Optional[str],
) -> str:
    """SHA-256 over the record's identity, timestamp and the previous link.

    The previous hash is part of the input, so editing any earlier record
    changes every hash after it.
    """
    data = f"{int(student_id)}:{int(session_id)}:{iso_timestamp(checked_in_at)}:{prev_hash or GENESIS_HASH}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def verify_chain(records: Sequence[AttendanceRecord]) -> ChainVerification:
    """Walk a student's records (ordered by check-in time) and report the first break."""
    prev_hash: Optional[str] = None

    for index, record in enumerate(records):
        # 1. Linkage to the previous record
        if record.prev_hash != prev_hash:
            return ChainVerification(
                valid=False,
                total_records=len(records),
                broken_at_index=index,
                broken_at_id=record.record_id,
            )

        # 2. Recomputed hash against the stored one
        expected = compute_attendance_hash(record.student_id, record.session_id, record.checked_in_at, prev_hash)
        if expected != record.hash:
            return ChainVerification(
                valid=False,
                total_records=len(records),
                broken_at_index=index,
                broken_at_id=record.record_id,
            )

        prev_hash = record.hash

    return ChainVerification(valid=True, total_records=len(records))
