from __future__ import annotations

import mysql.connector
import pytest
from mysql.connector import errorcode

from sport_attendance.core.exceptions import StaleChainError
from sport_attendance.ledger.mysql_ledger_repository import MySQLLedgerRepository
from sport_attendance.ledger.service import AttendanceLedger

from tests.conftest import S1


class ScriptedCursor:
    """Answers the ledger's statements from a canned script, no server needed."""

    def __init__(self, server):
        self._server = server
        self._row = None
        self.lastrowid = None

    def execute(self, sql, params=()):
        statement = " ".join(sql.split())
        self._server.statements.append(statement)
        self._row = None
        if statement.startswith("SELECT status FROM sport_sessions"):
            self._row = {"status": "active"}
        elif statement.startswith("SELECT user_id FROM users"):
            self._row = {"user_id": params[0]}
        elif statement.startswith("INSERT INTO sport_attendance"):
            if self._server.insert_errors:
                raise self._server.insert_errors.pop(0)
            self.lastrowid = 1

    def fetchone(self):
        return self._row

    def fetchall(self):
        return []

    def close(self):
        pass


class ScriptedConnection:
    def __init__(self, server):
        self._server = server

    def start_transaction(self):
        pass

    def cursor(self, dictionary=True):
        return ScriptedCursor(self._server)

    def commit(self):
        self._server.commits += 1

    def rollback(self):
        self._server.rollbacks += 1

    def close(self):
        pass


class ScriptedServer:
    def __init__(self, insert_errors=()):
        self.insert_errors = list(insert_errors)
        self.statements: list[str] = []
        self.commits = 0
        self.rollbacks = 0

    def connect(self):
        return ScriptedConnection(self)


def lock_error(errno: int) -> mysql.connector.DatabaseError:
    return mysql.connector.DatabaseError(msg="Deadlock found when trying to get lock", errno=errno)


def insert_kwargs(**overrides):
    kwargs = dict(
        session_id=7,
        student_id=S1,
        checked_in_at=None,
        hash="a" * 64,
        prev_hash=None,
        expected_prev_hash=None,
    )
    kwargs.update(overrides)
    return kwargs


def test_insert_locks_student_row_before_reading_head(clock):
    server = ScriptedServer()

    MySQLLedgerRepository(server).insert_pending(**insert_kwargs(checked_in_at=clock()))

    locks = [s for s in server.statements if s.endswith("FOR UPDATE")]
    assert locks[0].startswith("SELECT status FROM sport_sessions")
    assert locks[1].startswith("SELECT user_id FROM users")
    assert locks[2].startswith("SELECT hash FROM sport_attendance")
    assert server.commits == 1


@pytest.mark.parametrize("errno", [errorcode.ER_LOCK_DEADLOCK, errorcode.ER_LOCK_WAIT_TIMEOUT])
def test_lock_conflicts_surface_as_stale_head(clock, errno):
    server = ScriptedServer(insert_errors=[lock_error(errno)])

    with pytest.raises(StaleChainError):
        MySQLLedgerRepository(server).insert_pending(**insert_kwargs(checked_in_at=clock()))
    assert server.rollbacks == 1


def test_other_database_errors_propagate(clock):
    server = ScriptedServer(insert_errors=[mysql.connector.DatabaseError(msg="gone away", errno=2013)])

    with pytest.raises(mysql.connector.DatabaseError) as exc_info:
        MySQLLedgerRepository(server).insert_pending(**insert_kwargs(checked_in_at=clock()))
    assert exc_info.value.errno == 2013


def test_ledger_retries_after_deadlock_on_first_checkin(clock):
    server = ScriptedServer(insert_errors=[lock_error(errorcode.ER_LOCK_DEADLOCK)])

    record = AttendanceLedger(MySQLLedgerRepository(server), clock=clock).append(S1, 7)

    assert record.prev_hash is None
    inserts = [s for s in server.statements if s.startswith("INSERT INTO sport_attendance")]
    assert len(inserts) == 2
    assert server.rollbacks == 1
