"""Tests for SessionLedger against a real SQLite file."""

import pytest

from vcpin.errors import LedgerUnavailableError
from vcpin.services.db import Database
from vcpin.services.ledger import SessionLedger


class TestSessions:
    @pytest.mark.asyncio
    async def test_join_then_leave_accumulates(self, ledger):
        await ledger.begin_session("p", 0)
        elapsed = await ledger.end_session("p", 600_000)

        assert elapsed == 600_000
        assert await ledger.get_total("p") == 600_000
        assert await ledger.get_session_start("p") is None
        assert await ledger.active_session_count() == 0

    @pytest.mark.asyncio
    async def test_end_without_begin_is_noop(self, ledger):
        assert await ledger.end_session("ghost", 5_000) == 0
        assert await ledger.get_total("ghost") == 0
        assert await ledger.top(10) == []

    @pytest.mark.asyncio
    async def test_second_begin_overwrites_start(self, ledger):
        await ledger.begin_session("p", 1_000)
        await ledger.begin_session("p", 4_000)

        assert await ledger.active_session_count() == 1
        assert await ledger.get_session_start("p") == 4_000
        assert await ledger.end_session("p", 10_000) == 6_000

    @pytest.mark.asyncio
    async def test_total_is_sum_of_sessions_floored_per_session(self, ledger):
        sessions = [(0, 1_000), (5_000, 9_500), (20_000, 19_000), (30_000, 30_000)]
        for start, end in sessions:
            await ledger.begin_session("p", start)
            await ledger.end_session("p", end)

        expected = sum(max(0, end - start) for start, end in sessions)
        assert await ledger.get_total("p") == expected == 5_500

    @pytest.mark.asyncio
    async def test_clock_skew_session_still_creates_record(self, ledger):
        await ledger.begin_session("p", 10_000)
        assert await ledger.end_session("p", 9_000) == 0

        assert await ledger.top(5) == [("p", 0)]

    @pytest.mark.asyncio
    async def test_seed_in_progress_opens_session(self, ledger):
        await ledger.seed_in_progress("p", 7_000)
        assert await ledger.get_session_start("p") == 7_000

    @pytest.mark.asyncio
    async def test_ids_are_opaque_strings(self, ledger):
        await ledger.begin_session(123456789012345678, 0)
        await ledger.end_session("123456789012345678", 10)
        assert await ledger.get_total("123456789012345678") == 10


class TestTop:
    @pytest.mark.asyncio
    async def test_top_is_descending_and_truncated(self, ledger):
        for pid, total in [("e", 100), ("a", 500), ("c", 300), ("b", 400), ("d", 200)]:
            await ledger.begin_session(pid, 0)
            await ledger.end_session(pid, total)

        assert await ledger.top(3) == [("a", 500), ("b", 400), ("c", 300)]

    @pytest.mark.asyncio
    async def test_ties_break_on_id(self, ledger):
        for pid in ("z", "m", "a"):
            await ledger.begin_session(pid, 0)
            await ledger.end_session(pid, 50)

        assert [pid for pid, _ in await ledger.top(10)] == ["a", "m", "z"]

    @pytest.mark.asyncio
    async def test_limit_below_one_is_clamped(self, ledger):
        for pid in ("a", "b"):
            await ledger.begin_session(pid, 0)
            await ledger.end_session(pid, 10)

        assert len(await ledger.top(0)) == 1


class TestCorrections:
    @pytest.mark.asyncio
    async def test_adjust_adds_and_floors_at_zero(self, ledger):
        assert await ledger.adjust_total("p", 90_000) == 90_000
        assert await ledger.adjust_total("p", -30_000) == 60_000
        assert await ledger.adjust_total("p", -10_000_000) == 0
        assert await ledger.get_total("p") == 0


class TestDurability:
    @pytest.mark.asyncio
    async def test_totals_survive_reopen(self, tmp_path):
        path = str(tmp_path / "persist.db")

        db = Database(path)
        await db.connect()
        first = SessionLedger(db)
        await first.begin_session("p", 0)
        await first.end_session("p", 42_000)
        await first.begin_session("q", 1_000)
        await db.close()

        db = Database(path)
        await db.connect()
        second = SessionLedger(db)
        try:
            assert await second.get_total("p") == 42_000
            assert await second.get_session_start("q") == 1_000
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_failed_end_session_rolls_back(self, ledger, database):
        await ledger.begin_session("p", 0)
        await database.conn.execute("DROP TABLE user_hours")

        with pytest.raises(LedgerUnavailableError):
            await ledger.end_session("p", 1_000)

        # delete was rolled back with the failed accumulate
        assert await ledger.get_session_start("p") == 0

    @pytest.mark.asyncio
    async def test_unconnected_database_raises_ledger_error(self):
        ledger = SessionLedger(Database(":memory:"))

        with pytest.raises(LedgerUnavailableError):
            await ledger.begin_session("p", 0)
        with pytest.raises(LedgerUnavailableError):
            await ledger.top(5)
