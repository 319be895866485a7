from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .checkin.service import CheckinCoordinator
from .common.datetime_utils import Clock, now_utc
from .core.constants import REQUIRED_CLASSES
from .database.connection import DatabaseConnection
from .database.memory import (
    InMemoryDatabase,
    InMemoryDirectoryRepository,
    InMemoryLedgerRepository,
    InMemorySessionRepository,
)
from .ledger.mysql_ledger_repository import MySQLLedgerRepository
from .ledger.repository import LedgerRepository
from .ledger.service import AttendanceLedger
from .portal.service import AttendancePortal
from .progress.service import AttendanceStatsService, ProgressAggregator
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.repository import SessionRepository
from .sessions.service import SessionStateMachine
from .users.mysql_directory_repository import MySQLDirectoryRepository
from .users.repository import DirectoryRepository


@dataclass(frozen=True)
class Container:
    directory_repo: DirectoryRepository
    sessions_repo: SessionRepository
    ledger_repo: LedgerRepository

    ledger: AttendanceLedger
    state_machine: SessionStateMachine
    coordinator: CheckinCoordinator
    progress: ProgressAggregator
    stats_service: AttendanceStatsService
    portal: AttendancePortal


def build_container(
    *,
    db_config: Optional[dict] = None,
    storage_backend: str = "mysql",
    memory_db: Optional[InMemoryDatabase] = None,
    required_classes: int = REQUIRED_CLASSES,
    clock: Clock = now_utc,
) -> Container:
    if storage_backend == "memory":
        db = memory_db or InMemoryDatabase()
        directory_repo = InMemoryDirectoryRepository(db)
        sessions_repo = InMemorySessionRepository(db)
        ledger_repo = InMemoryLedgerRepository(db)
    elif storage_backend == "mysql":
        if not db_config:
            raise ValueError("db_config is required for the mysql backend")
        conn = DatabaseConnection.from_dict(db_config)
        directory_repo = MySQLDirectoryRepository(conn)
        sessions_repo = MySQLSessionRepository(conn)
        ledger_repo = MySQLLedgerRepository(conn)
    else:
        raise ValueError(f"Unknown storage backend: {storage_backend!r}")

    ledger = AttendanceLedger(ledger_repo, clock=clock)
    state_machine = SessionStateMachine(sessions_repo, directory_repo, clock=clock)
    coordinator = CheckinCoordinator(sessions_repo, ledger_repo, ledger, clock=clock)
    progress = ProgressAggregator(ledger_repo, required=required_classes)
    stats_service = AttendanceStatsService(sessions_repo, ledger_repo, directory_repo, required=required_classes)
    portal = AttendancePortal(
        sessions=sessions_repo,
        records=ledger_repo,
        directory=directory_repo,
        state_machine=state_machine,
        coordinator=coordinator,
        ledger=ledger,
        progress=progress,
        stats=stats_service,
        clock=clock,
    )

    return Container(
        directory_repo=directory_repo,
        sessions_repo=sessions_repo,
        ledger_repo=ledger_repo,
        ledger=ledger,
        state_machine=state_machine,
        coordinator=coordinator,
        progress=progress,
        stats_service=stats_service,
        portal=portal,
    )
