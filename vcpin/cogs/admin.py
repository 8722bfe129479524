# vcpin/cogs/admin.py
from __future__ import annotations

import logging

import discord
from discord.ext import commands

from vcpin.ui.formatting import fmt_duration

log = logging.getLogger(__name__)


def parse_duration_ms(text: str) -> int:
    """
    Accept (optionally signed):
      180        -> 180 seconds
      30m        -> 30 minutes
      2h         -> 2 hours
      -15m       -> minus 15 minutes
    """
    s = (text or "").strip().lower()
    if not s:
        raise ValueError("empty")

    if s.endswith("m"):
        return int(s[:-1]) * 60 * 1000
    if s.endswith("h"):
        return int(s[:-1]) * 3600 * 1000
    return int(s) * 1000


def _short_err(e: Exception) -> str:
    return f"{type(e).__name__}: {e}"


class AdminCog(commands.Cog):
    """Admin-only voice diagnostics and ledger corrections."""

    def __init__(self, bot: commands.Bot, settings, ledger, supervisor):
        self.bot = bot
        self.settings = settings
        self.ledger = ledger
        self.supervisor = supervisor

    async def _fail(self, ctx: commands.Context, e: Exception):
        log.error("[AdminCog] command error: %s", _short_err(e), exc_info=e)
        try:
            await ctx.reply(f"❌ `{_short_err(e)}`")
        except discord.HTTPException:
            log.warning("[AdminCog] could not report error back to channel")

    # ---------- BASIC ----------

    @commands.command(name="ping")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def ping(self, ctx: commands.Context):
        await ctx.reply(f"🏓 pong ({round(self.bot.latency * 1000)}ms)")

    # ---------- VOICE ----------

    @commands.command(name="vcstatus")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def vcstatus(self, ctx: commands.Context):
        try:
            sup = self.supervisor
            conn = sup.connection
            active = await self.ledger.active_session_count()

            msg = (
                f"**Voice status**\n"
                f"- phase: `{sup.phase.value}`\n"
                f"- transport: `{conn.status.value if conn else 'none'}`\n"
                f"- channel: `{conn.channel_id if conn else 'none'}` (target `{sup.channel_id}`)\n"
                f"- join in flight: `{sup.joining}`\n"
                f"- rebuild pending: `{sup.rebuild_pending}`\n"
                f"- active sessions: `{active}`\n"
            )
            await ctx.reply(msg)
        except Exception as e:
            await self._fail(ctx, e)

    @commands.command(name="rejoin")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def rejoin(self, ctx: commands.Context):
        """
        !rejoin -> tear down the voice connection and join again
        """
        self.supervisor.schedule_rebuild(0, reason=f"requested by {ctx.author}", force=True)
        await ctx.reply("🔁 Rebuilding voice connection...")

    # ---------- LEDGER ----------

    @commands.command(name="adjust")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def adjust(self, ctx: commands.Context, member: discord.Member, amount: str):
        """
        !adjust @user 30m    -> add 30 minutes
        !adjust @user -2h    -> remove 2 hours (never below 0)
        """
        try:
            delta = parse_duration_ms(amount)
        except ValueError:
            return await ctx.reply("Use: `!adjust @user 30m` | `!adjust @user -2h` | `!adjust @user 90`")

        try:
            new_total = await self.ledger.adjust_total(str(member.id), delta)
            log.info("[TIME] %s adjusted %s by %dms -> %dms", ctx.author, member.id, delta, new_total)
            await ctx.reply(f"✅ {member.mention} now has **{fmt_duration(new_total)}**")
        except Exception as e:
            await self._fail(ctx, e)
