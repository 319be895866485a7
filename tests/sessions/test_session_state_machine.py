from __future__ import annotations

import pytest

from sport_attendance.core.enums import CheckinStatus, SessionStatus
from sport_attendance.core.exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError

from tests.conftest import ADMIN, FOOTBALL, OTHER_TEACHER, S1, S2, TEACHER, VOLLEYBALL


def test_start_creates_active_session_with_fresh_secret(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)

    assert session.status == SessionStatus.ACTIVE
    assert session.teacher_id == TEACHER
    assert session.section_id == FOOTBALL
    assert session.started_at == clock()
    assert len(session.secret_seed) == 64
    assert container.sessions_repo.list_active() == [session]


def test_each_session_gets_its_own_secret(container):
    a = container.state_machine.start(TEACHER, FOOTBALL)
    b = container.state_machine.start(OTHER_TEACHER, VOLLEYBALL)
    assert a.secret_seed != b.secret_seed


def test_teacher_cannot_have_two_active_sessions(container):
    first = container.state_machine.start(TEACHER, FOOTBALL)

    with pytest.raises(ConflictError) as exc:
        container.state_machine.start(TEACHER, FOOTBALL)
    assert exc.value.session_id == first.session_id


def test_teacher_can_start_again_after_ending(container):
    first = container.state_machine.start(TEACHER, FOOTBALL)
    container.state_machine.end(first.session_id, TEACHER, [])

    second = container.state_machine.start(TEACHER, FOOTBALL)
    assert second.session_id != first.session_id


def test_only_section_teachers_or_admin_may_start(container):
    with pytest.raises(ForbiddenError):
        container.state_machine.start(OTHER_TEACHER, FOOTBALL)
    with pytest.raises(ForbiddenError):
        container.state_machine.start(S1, FOOTBALL)

    assert container.state_machine.start(ADMIN, FOOTBALL).teacher_id == ADMIN


def test_start_unknown_section(container):
    with pytest.raises(NotFoundError):
        container.state_machine.start(TEACHER, 999)


def _checked_in_session(container, clock, *students):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    for student in students:
        clock.advance(seconds=1)
        container.ledger.append(student, session.session_id)
    return session


def test_end_confirms_listed_and_rejects_others(container, clock):
    session = _checked_in_session(container, clock, S1, S2)
    clock.advance(minutes=45)

    outcome = container.state_machine.end(session.session_id, TEACHER, [S1])

    assert (outcome.confirmed_count, outcome.rejected_count) == (1, 1)
    by_student = {r.student_id: r for r in container.ledger_repo.list_for_session(session.session_id)}
    assert by_student[S1].status == CheckinStatus.CONFIRMED
    assert by_student[S1].confirmed_at == clock()
    assert by_student[S2].status == CheckinStatus.REJECTED
    assert by_student[S2].confirmed_at is None

    stored = container.sessions_repo.get_by_id(session.session_id)
    assert stored.status == SessionStatus.COMPLETED
    assert stored.ended_at == clock()


def test_end_ignores_listed_students_without_a_record(container, clock):
    session = _checked_in_session(container, clock, S1)

    outcome = container.state_machine.end(session.session_id, TEACHER, [S1, S2, 12345])

    assert (outcome.confirmed_count, outcome.rejected_count) == (1, 0)


def test_settling_keeps_chain_valid(container, clock):
    session = _checked_in_session(container, clock, S1)
    container.state_machine.end(session.session_id, TEACHER, [S1])
    assert container.ledger.audit(S1).valid


def test_cancel_rejects_everyone(container, clock):
    session = _checked_in_session(container, clock, S1, S2)

    outcome = container.state_machine.cancel(session.session_id, TEACHER)

    assert (outcome.confirmed_count, outcome.rejected_count) == (0, 2)
    statuses = {r.status for r in container.ledger_repo.list_for_session(session.session_id)}
    assert statuses == {CheckinStatus.REJECTED}
    assert container.sessions_repo.get_by_id(session.session_id).status == SessionStatus.CANCELLED


def test_no_pending_records_remain_after_close(container, clock):
    session = _checked_in_session(container, clock, S1, S2)
    container.state_machine.end(session.session_id, TEACHER, [])
    assert all(r.status != CheckinStatus.PENDING for r in container.ledger_repo.list_for_session(session.session_id))


@pytest.mark.parametrize("first", ["end", "cancel"])
@pytest.mark.parametrize("second", ["end", "cancel"])
def test_terminal_states_are_absorbing(container, first, second):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    sm = container.state_machine
    close = {"end": lambda: sm.end(session.session_id, TEACHER, []), "cancel": lambda: sm.cancel(session.session_id, TEACHER)}

    close[first]()
    status = container.sessions_repo.get_by_id(session.session_id).status

    with pytest.raises(InvalidStateError):
        close[second]()
    assert container.sessions_repo.get_by_id(session.session_id).status == status


def test_other_teacher_cannot_end_or_cancel(container):
    session = container.state_machine.start(TEACHER, FOOTBALL)

    with pytest.raises(ForbiddenError):
        container.state_machine.end(session.session_id, OTHER_TEACHER, [])
    with pytest.raises(ForbiddenError):
        container.state_machine.cancel(session.session_id, S1)
    assert container.sessions_repo.get_by_id(session.session_id).is_active


def test_admin_may_end_any_session(container):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    container.state_machine.end(session.session_id, ADMIN, [])
    assert container.sessions_repo.get_by_id(session.session_id).status == SessionStatus.COMPLETED


def test_missing_session(container):
    with pytest.raises(NotFoundError):
        container.state_machine.end(404, TEACHER, [])
    with pytest.raises(NotFoundError):
        container.state_machine.cancel(404, TEACHER)
