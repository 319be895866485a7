from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from sport_attendance.codes.oracle import generate_code
from sport_attendance.common.datetime_utils import to_epoch_millis
from sport_attendance.core.enums import CheckinStatus
from sport_attendance.core.exceptions import (
    DuplicateCheckinError,
    InvalidCodeError,
    InvalidStateError,
    SelfCheckinError,
)

from tests.conftest import FOOTBALL, OTHER_TEACHER, S1, S2, TEACHER, VOLLEYBALL


def code_for(session, clock) -> str:
    return generate_code(session.secret_seed, to_epoch_millis(clock()))


def test_checkin_creates_pending_record(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)

    result = container.coordinator.checkin(code_for(session, clock), S1)

    assert result.session.session_id == session.session_id
    assert result.record.status == CheckinStatus.PENDING
    assert result.record.student_id == S1
    assert result.record.checked_in_at == clock()
    assert container.ledger_repo.count_all() == 1


def test_code_from_previous_window_is_accepted(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    code = code_for(session, clock)
    clock.advance(seconds=45)

    assert container.coordinator.checkin(code, S1).session.session_id == session.session_id


def test_expired_code_is_rejected(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    code = code_for(session, clock)
    clock.advance(seconds=60)

    if code in (code_for(session, clock), generate_code(session.secret_seed, to_epoch_millis(clock()) - 30_000)):
        pytest.skip("code repeated across windows")
    with pytest.raises(InvalidCodeError):
        container.coordinator.checkin(code, S1)
    assert container.ledger_repo.count_all() == 0


def test_wrong_code_is_rejected(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    code = code_for(session, clock)
    wrong = f"{(int(code) + 1) % 1_000_000:06d}"
    if wrong == generate_code(session.secret_seed, to_epoch_millis(clock()) - 30_000):
        wrong = f"{(int(code) + 2) % 1_000_000:06d}"

    with pytest.raises(InvalidCodeError):
        container.coordinator.checkin(wrong, S1)


@pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", None, 123456])
def test_malformed_code_is_rejected(container, code):
    container.state_machine.start(TEACHER, FOOTBALL)
    with pytest.raises(InvalidCodeError):
        container.coordinator.checkin(code, S1)


def test_no_active_sessions(container, clock):
    with pytest.raises(InvalidCodeError):
        container.coordinator.checkin("000000", S1)


def test_code_resolves_the_right_session(container, clock):
    football = container.state_machine.start(TEACHER, FOOTBALL)
    volleyball = container.state_machine.start(OTHER_TEACHER, VOLLEYBALL)
    if code_for(football, clock) == code_for(volleyball, clock):
        pytest.skip("codes collided")

    assert container.coordinator.checkin(code_for(volleyball, clock), S1).session.session_id == volleyball.session_id
    assert container.coordinator.checkin(code_for(football, clock), S1).session.session_id == football.session_id


def test_teacher_cannot_check_in_to_own_session(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)

    with pytest.raises(SelfCheckinError):
        container.coordinator.checkin(code_for(session, clock), TEACHER)
    assert container.ledger_repo.count_all() == 0


def test_teacher_may_check_in_to_someone_elses_session(container, clock):
    session = container.state_machine.start(OTHER_TEACHER, VOLLEYBALL)
    assert container.coordinator.checkin(code_for(session, clock), TEACHER).record.student_id == TEACHER


def test_duplicate_checkin_leaves_ledger_unchanged(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    code = code_for(session, clock)
    container.coordinator.checkin(code, S1)

    clock.advance(seconds=5)
    with pytest.raises(DuplicateCheckinError):
        container.coordinator.checkin(code, S1)
    assert container.ledger_repo.count_all() == 1


def test_closed_session_no_longer_accepts_its_code(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    code = code_for(session, clock)
    container.state_machine.end(session.session_id, TEACHER, [])

    with pytest.raises(InvalidCodeError):
        container.coordinator.checkin(code, S1)


def test_session_closed_between_resolve_and_insert(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    resolved = container.coordinator.resolve_session(code_for(session, clock), clock())
    container.state_machine.cancel(session.session_id, TEACHER)

    with pytest.raises(InvalidStateError):
        container.ledger.append(S1, resolved.session_id)
    assert container.ledger_repo.count_all() == 0


def test_concurrent_checkins_of_one_student_into_two_sessions(container, clock):
    football = container.state_machine.start(TEACHER, FOOTBALL)
    volleyball = container.state_machine.start(OTHER_TEACHER, VOLLEYBALL)
    if code_for(football, clock) == code_for(volleyball, clock):
        pytest.skip("codes collided")
    codes = [code_for(football, clock), code_for(volleyball, clock)]
    barrier = threading.Barrier(2)

    def worker(code):
        barrier.wait()
        return container.coordinator.checkin(code, S1).record

    with ThreadPoolExecutor(max_workers=2) as pool:
        a, b = pool.map(worker, codes)

    first, second = (a, b) if a.prev_hash is None else (b, a)
    assert first.prev_hash is None
    assert second.prev_hash == first.hash
    assert container.ledger.audit(S1).valid


def test_concurrent_duplicate_checkins_commit_once(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    code = code_for(session, clock)
    barrier = threading.Barrier(8)

    def worker(_):
        barrier.wait()
        try:
            container.coordinator.checkin(code, S2)
            return "ok"
        except DuplicateCheckinError:
            return "duplicate"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(worker, range(8)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("duplicate") == 7
    assert container.ledger_repo.count_all() == 1
