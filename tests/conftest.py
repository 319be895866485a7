from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sport_attendance.container import build_container
from sport_attendance.core.enums import Role
from sport_attendance.database.memory import InMemoryDatabase

ADMIN = 1
TEACHER = 2
OTHER_TEACHER = 3
S1 = 10
S2 = 11
S3 = 12

FOOTBALL = 1
VOLLEYBALL = 2


class FixedClock:
    """Injectable clock; tests move time explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    # Start of a 30 s code window.
    return FixedClock(datetime(2026, 2, 1, 8, 30, 0, tzinfo=timezone.utc))


@pytest.fixture
def db() -> InMemoryDatabase:
    db = InMemoryDatabase()
    db.add_user(ADMIN, "Admin", role=Role.ADMIN, username="admin")
    db.add_user(TEACHER, "Ivan", last_name="Petrov", role=Role.TEACHER, username="coach_ivan")
    db.add_user(OTHER_TEACHER, "Maria", last_name="Orlova", role=Role.TEACHER, username="coach_maria")
    db.add_user(S1, "Anna", last_name="Smirnova", username="anna")
    db.add_user(S2, "Oleg", last_name="Ivanov", username="oleg")
    db.add_user(S3, "Pavel", username="pavel")
    db.add_section(FOOTBALL, "Football", emoji="⚽")
    db.add_section(VOLLEYBALL, "Volleyball")
    db.assign_teacher(TEACHER, FOOTBALL)
    db.assign_teacher(OTHER_TEACHER, VOLLEYBALL)
    return db


@pytest.fixture
def container(db, clock):
    return build_container(storage_backend="memory", memory_db=db, clock=clock)
