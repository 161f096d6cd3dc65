from __future__ import annotations

import uuid

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url


class TemporaryPostgresDatabase:
    """A throwaway database on the server named by ``base_url``, created per test."""

    def __init__(self, base_url: str) -> None:
        url = make_url(base_url)
        self.name = f"evstock_test_{uuid.uuid4().hex}"
        self._admin_url = url.set(database="postgres")
        self.url = str(url.set(database=self.name))

    def _admin(self, statements) -> None:
        engine = create_engine(self._admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                for statement, params in statements:
                    conn.execute(text(statement), params)
        finally:
            engine.dispose()

    def create(self) -> str:
        self._admin([(f'CREATE DATABASE "{self.name}"', {})])
        return self.url

    def drop(self) -> None:
        self._admin(
            [
                (
                    "SELECT pg_terminate_backend(pid) FROM pg_stat_activity WHERE datname = :name",
                    {"name": self.name},
                ),
                (f'DROP DATABASE IF EXISTS "{self.name}"', {}),
            ]
        )
