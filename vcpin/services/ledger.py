# vcpin/services/ledger.py
from __future__ import annotations

import asyncio

import aiosqlite

from vcpin.errors import LedgerUnavailableError


_UPSERT_SESSION = """
INSERT INTO sessions(user_id, started_at)
VALUES (?, ?)
ON CONFLICT(user_id)
DO UPDATE SET started_at = excluded.started_at
"""

_ADD_TIME = """
INSERT INTO user_hours(user_id, total_ms)
VALUES (?, ?)
ON CONFLICT(user_id)
DO UPDATE SET total_ms = total_ms + excluded.total_ms
"""


class SessionLedger:
    """
    Durable voice-time ledger.

    Two tables:
      user_hours(user_id, total_ms)   -> lifetime totals
      sessions(user_id, started_at)   -> in-progress sessions, one per user

    Every unit of work takes the ledger lock and runs inside one SQLite
    transaction, so the delete-session + add-time pair in end_session()
    is all-or-nothing. Storage faults surface as LedgerUnavailableError.
    """

    def __init__(self, database):
        self.database = database
        self._lock = asyncio.Lock()

    # ---------- INTERNAL ----------

    def _fail(self, action: str, exc: Exception) -> LedgerUnavailableError:
        return LedgerUnavailableError(f"Ledger {action} failed: {exc}")

    async def _fetch_one(self, sql: str, params: tuple):
        async with self._lock:
            conn = self.database.require()
            try:
                cur = await conn.execute(sql, params)
                return await cur.fetchone()
            except aiosqlite.Error as exc:
                raise self._fail("read", exc) from exc

    # ---------- SESSIONS ----------

    async def begin_session(self, participant_id: str, at_ms: int) -> None:
        """
        Upsert the active session. A second begin without an end overwrites
        started_at ("last join wins").
        """
        async with self._lock:
            try:
                async with self.database.transaction() as conn:
                    await conn.execute(_UPSERT_SESSION, (str(participant_id), int(at_ms)))
            except aiosqlite.Error as exc:
                raise self._fail("begin_session", exc) from exc

    async def seed_in_progress(self, participant_id: str, at_ms: int) -> None:
        # Startup approximation: the real join time of people already in VC is unknown.
        await self.begin_session(participant_id, at_ms)

    async def end_session(self, participant_id: str, at_ms: int) -> int:
        """
        Close the active session and fold its length into the total.
        Returns the elapsed ms; 0 (and no mutation) if there was no session.
        """
        pid = str(participant_id)
        async with self._lock:
            try:
                async with self.database.transaction() as conn:
                    cur = await conn.execute("SELECT started_at FROM sessions WHERE user_id=?", (pid,))
                    row = await cur.fetchone()
                    if not row:
                        return 0

                    elapsed = max(0, int(at_ms) - int(row[0]))
                    await conn.execute("DELETE FROM sessions WHERE user_id=?", (pid,))
                    await conn.execute(_ADD_TIME, (pid, elapsed))
                    return elapsed
            except aiosqlite.Error as exc:
                raise self._fail("end_session", exc) from exc

    # ---------- CORRECTIONS ----------

    async def adjust_total(self, participant_id: str, delta_ms: int) -> int:
        """Apply a signed correction to a total (floored at 0). Returns the new total."""
        pid = str(participant_id)
        async with self._lock:
            try:
                async with self.database.transaction() as conn:
                    cur = await conn.execute("SELECT total_ms FROM user_hours WHERE user_id=?", (pid,))
                    row = await cur.fetchone()
                    new_total = max(0, (int(row[0]) if row else 0) + int(delta_ms))
                    await conn.execute(
                        """
                        INSERT INTO user_hours(user_id, total_ms)
                        VALUES (?, ?)
                        ON CONFLICT(user_id)
                        DO UPDATE SET total_ms = excluded.total_ms
                        """,
                        (pid, new_total),
                    )
                    return new_total
            except aiosqlite.Error as exc:
                raise self._fail("adjust_total", exc) from exc

    # ---------- READS ----------

    async def get_total(self, participant_id: str) -> int:
        row = await self._fetch_one("SELECT total_ms FROM user_hours WHERE user_id=?", (str(participant_id),))
        return int(row[0]) if row else 0

    async def get_session_start(self, participant_id: str) -> int | None:
        row = await self._fetch_one("SELECT started_at FROM sessions WHERE user_id=?", (str(participant_id),))
        return int(row[0]) if row else None

    async def active_session_count(self) -> int:
        row = await self._fetch_one("SELECT COUNT(*) FROM sessions", ())
        return int(row[0]) if row else 0

    # ---------- LEADERBOARD ----------

    async def top(self, limit: int = 10) -> list[tuple[str, int]]:
        limit = max(1, int(limit))
        async with self._lock:
            conn = self.database.require()
            try:
                cur = await conn.execute(
                    """
                    SELECT user_id, total_ms
                    FROM user_hours
                    ORDER BY total_ms DESC, user_id ASC
                    LIMIT ?
                    """,
                    (limit,),
                )
                rows = await cur.fetchall()
            except aiosqlite.Error as exc:
                raise self._fail("top", exc) from exc
        return [(str(user_id), int(total_ms)) for (user_id, total_ms) in rows]
