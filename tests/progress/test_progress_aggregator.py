from __future__ import annotations

import pytest

from sport_attendance.codes.oracle import generate_code
from sport_attendance.common.datetime_utils import to_epoch_millis
from sport_attendance.core.enums import CheckinStatus
from sport_attendance.progress.service import ProgressAggregator, round_half_up

from tests.conftest import FOOTBALL, S1, S2, S3, TEACHER


def run_session(container, clock, *, attendees, confirmed):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    code = generate_code(session.secret_seed, to_epoch_millis(clock()))
    for student in attendees:
        container.coordinator.checkin(code, student)
    clock.advance(minutes=45)
    container.state_machine.end(session.session_id, TEACHER, confirmed)
    clock.advance(days=1)
    return session


def test_no_history(container):
    p = container.progress.progress(S1)
    assert (p.confirmed, p.pending, p.rejected, p.percentage, p.completed) == (0, 0, 0, 0, False)


def test_football_scenario(container, clock):
    run_session(container, clock, attendees=[S1, S2], confirmed=[S1])

    s1 = container.progress.progress(S1)
    s2 = container.progress.progress(S2)

    assert s1.confirmed == 1
    assert s1.percentage == 4
    assert s2.rejected == 1
    assert s2.confirmed == 0


def test_pending_counts_while_session_is_open(container, clock):
    session = container.state_machine.start(TEACHER, FOOTBALL)
    container.coordinator.checkin(generate_code(session.secret_seed, to_epoch_millis(clock())), S1)

    p = container.progress.progress(S1)

    assert p.pending == 1
    assert p.total == 1
    assert p.to_dict()["total"] == 1
    assert p.to_dict()["required"] == 25


def test_completed_after_required_confirmations(container, clock):
    for _ in range(25):
        run_session(container, clock, attendees=[S3], confirmed=[S3])

    p = container.progress.progress(S3)

    assert p.confirmed == 25
    assert p.completed is True
    assert p.percentage == 100
    assert container.ledger.audit(S3).total_records == 25
    assert container.ledger.audit(S3).valid


def test_percentage_keeps_growing_past_requirement(container, clock):
    for _ in range(3):
        run_session(container, clock, attendees=[S1], confirmed=[S1])

    p = ProgressAggregator(container.ledger_repo, required=2).progress(S1)

    assert p.completed
    assert p.percentage == 150


def test_rounding_is_half_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(2.5) == 3
    assert round_half_up(4.4) == 4


def test_required_must_be_positive(container):
    with pytest.raises(ValueError):
        ProgressAggregator(container.ledger_repo, required=0)


def test_progress_never_mutates_ledger(container, clock):
    run_session(container, clock, attendees=[S1], confirmed=[])
    before = list(container.ledger_repo.list_chain_for_student(S1))

    container.progress.progress(S1)

    assert list(container.ledger_repo.list_chain_for_student(S1)) == before
    assert before[0].status == CheckinStatus.REJECTED


def test_stats(container, clock):
    run_session(container, clock, attendees=[S1, S2], confirmed=[S1, S2])
    run_session(container, clock, attendees=[S1], confirmed=[])
    container.state_machine.start(TEACHER, FOOTBALL)

    s = container.stats_service.stats()

    assert s.total_sessions == 3
    assert s.active_sessions == 1
    assert s.total_attendances == 3
    assert s.confirmed_attendances == 2
    assert s.students_with_attendance == 2
    assert s.completed_students == 0
    assert s.teacher_count == 2
    assert s.required_classes == 25
