from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Section, User


class DirectoryRepository(Protocol):
    """Read-only view of the identity/section directory.

    Note (DIP): services depend on this interface, not on a concrete store.
    """

    def get_user(self, user_id: int) -> Optional[User]:
        raise NotImplementedError

    def get_section(self, section_id: int) -> Optional[Section]:
        raise NotImplementedError

    def is_section_teacher(self, user_id: int, section_id: int) -> bool:
        raise NotImplementedError

    def count_teachers(self) -> int:
        raise NotImplementedError

    def search_users(self, query: str, *, limit: int) -> Sequence[User]:
        """Users whose first name, last name or username contains ``query``, case-insensitively."""

        raise NotImplementedError
