from __future__ import annotations

from dataclasses import dataclass

import mysql.connector


@dataclass
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str


class DatabaseConnection:
    """DB connection factory shared by the MySQL repositories.

    Note: We create short-lived connections per operation; each repository call
    is its own transaction.
    """

    def __init__(self, config: DBConfig):
        self._config = config

    @classmethod
    def from_dict(cls, db_config: dict) -> "DatabaseConnection":
        return cls(
            DBConfig(
                host=str(db_config["host"]),
                port=int(db_config.get("port", 3306)),
                user=str(db_config["user"]),
                password=str(db_config["password"]),
                database=str(db_config["database"]),
            )
        )

    def connect(self):
        return mysql.connector.connect(
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
            time_zone="+00:00",
        )
