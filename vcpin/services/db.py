# vcpin/services/db.py
from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from vcpin.errors import LedgerUnavailableError

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

-- Lifetime voice time per participant (milliseconds)
CREATE TABLE IF NOT EXISTS user_hours(
  user_id TEXT PRIMARY KEY,
  total_ms INTEGER NOT NULL DEFAULT 0
);

-- In-progress session per participant (at most one row each)
CREATE TABLE IF NOT EXISTS sessions(
  user_id TEXT PRIMARY KEY,
  started_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_user_hours_total ON user_hours(total_ms DESC);
"""


class Database:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            # autocommit mode: transactions are opened explicitly in transaction()
            self.conn = await aiosqlite.connect(self.db_path, isolation_level=None)
            await self.conn.executescript(SCHEMA_SQL)
        except aiosqlite.Error as exc:
            raise LedgerUnavailableError(f"Could not open database at {self.db_path}: {exc}") from exc

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None

    def require(self) -> aiosqlite.Connection:
        if not self.conn:
            raise LedgerUnavailableError("Database not connected")
        return self.conn

    @asynccontextmanager
    async def transaction(self):
        """
        BEGIN IMMEDIATE ... COMMIT, rolled back if the body raises.
        Callers serialise units of work themselves (one shared connection).
        """
        conn = self.require()
        await conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            await conn.execute("ROLLBACK")
            raise
        else:
            await conn.execute("COMMIT")
