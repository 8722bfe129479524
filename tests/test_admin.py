from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from conftest import FakeSupervisor
from vcpin.cogs.admin import AdminCog
from vcpin.config import Settings


def _ctx():
    return SimpleNamespace(author="admin#0001", reply=AsyncMock())


def _cog(ledger=None, supervisor=None):
    settings = Settings(token="t", guild_id=1, voice_channel_id=100)
    return AdminCog(SimpleNamespace(latency=0.05), settings, ledger, supervisor or FakeSupervisor())


class TestAdminCommands:
    @pytest.mark.asyncio
    async def test_rejoin_forces_immediate_rebuild(self):
        sup = FakeSupervisor()
        cog = _cog(supervisor=sup)
        ctx = _ctx()

        await cog.rejoin.callback(cog, ctx)

        assert [delay for delay, _ in sup.rebuilds] == [0]
        ctx.reply.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_adjust_writes_delta(self, ledger):
        cog = _cog(ledger)
        member = SimpleNamespace(id=42, mention="<@42>")
        ctx = _ctx()

        await cog.adjust.callback(cog, ctx, member, "30m")
        await cog.adjust.callback(cog, ctx, member, "-10m")

        assert await ledger.get_total("42") == 20 * 60 * 1000
        assert "20m 0s" in ctx.reply.await_args.args[0]

    @pytest.mark.asyncio
    async def test_adjust_rejects_bad_amount(self, ledger):
        cog = _cog(ledger)
        ctx = _ctx()

        await cog.adjust.callback(cog, ctx, SimpleNamespace(id=42, mention="<@42>"), "lots")

        assert "Use:" in ctx.reply.await_args.args[0]
        assert await ledger.top(5) == []
