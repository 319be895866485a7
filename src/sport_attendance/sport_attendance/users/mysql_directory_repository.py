from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Section, User
from .repository import DirectoryRepository


def _to_user(r: dict) -> User:
    return User(
        user_id=int(r["user_id"]),
        first_name=r["first_name"],
        last_name=r.get("last_name"),
        username=r.get("username"),
        role=Role(r["role"]),
    )


class MySQLDirectoryRepository(DirectoryRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_user(self, user_id: int) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT user_id, first_name, last_name, username, role FROM users WHERE user_id=%s",
                (int(user_id),),
            )
            r = fetchone(cur)
            return _to_user(r) if r else None

    def get_section(self, section_id: int) -> Optional[Section]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT section_id, name, emoji FROM sport_sections WHERE section_id=%s", (int(section_id),))
            r = fetchone(cur)
            if not r:
                return None
            return Section(section_id=int(r["section_id"]), name=r["name"], emoji=r.get("emoji"))

    def is_section_teacher(self, user_id: int, section_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT 1 AS ok FROM sport_teachers WHERE user_id=%s AND section_id=%s",
                (int(user_id), int(section_id)),
            )
            return fetchone(cur) is not None

    def count_teachers(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM sport_teachers")
            return int(fetchone(cur)["n"])

    def search_users(self, query: str, *, limit: int) -> Sequence[User]:
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        with db_cursor(self._conn_factory) as (_, cur):
            # Column collations are case-insensitive.
            cur.execute(
                """
                SELECT user_id, first_name, last_name, username, role
                FROM users
                WHERE first_name LIKE %s OR last_name LIKE %s OR username LIKE %s
                ORDER BY user_id
                LIMIT %s
                """,
                (pattern, pattern, pattern, int(limit)),
            )
            return [_to_user(r) for r in fetchall(cur)]
