from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User role used for authorization decisions."""

    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class SessionStatus(str, Enum):
    """Lifecycle of a teaching session. Both terminal states are absorbing."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CheckinStatus(str, Enum):
    """Status of an attendance record in the ledger."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
