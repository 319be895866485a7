from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class User:
    """Domain entity: a portal user as seen by the attendance subsystem.

    Registration and login live elsewhere; this is the read-only projection
    needed for authorization and display.
    """

    user_id: int
    first_name: str
    last_name: Optional[str]
    username: Optional[str]
    role: Role

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()


@dataclass(frozen=True)
class Section:
    """A sports section (e.g. Football) that sessions are held for."""

    section_id: int
    name: str
    emoji: Optional[str] = None
