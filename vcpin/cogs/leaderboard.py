# vcpin/cogs/leaderboard.py
from __future__ import annotations

import asyncio
import io
import logging

import discord
from discord.ext import commands

from vcpin.core.timecore import now_utc_ms
from vcpin.errors import LedgerUnavailableError
from vcpin.ui.avatars import AvatarCache
from vcpin.ui.formatting import clamp_limit, fmt_duration
from vcpin.ui.leaderboard_card import LeaderboardRow, render_leaderboard

log = logging.getLogger(__name__)


class LeaderboardCog(commands.Cog):
    def __init__(self, bot: commands.Bot, settings, ledger, avatars: AvatarCache | None = None):
        self.bot = bot
        self.settings = settings
        self.ledger = ledger
        self.avatars = avatars or AvatarCache()

    # ---------------- helpers ----------------

    def _member(self, guild: discord.Guild, participant_id: str) -> discord.Member | None:
        try:
            return guild.get_member(int(participant_id))
        except ValueError:
            return None

    async def build_rows(self, guild: discord.Guild, ranked: list[tuple[str, int]]) -> list[LeaderboardRow]:
        rows: list[LeaderboardRow] = []
        for pos, (pid, total_ms) in enumerate(ranked, start=1):
            member = self._member(guild, pid)
            name = member.display_name if member else f"User {pid}"
            avatar = await self.avatars.get(member)
            rows.append(LeaderboardRow(rank=pos, name=name, total_ms=total_ms, avatar=avatar))
        return rows

    # ---------------- commands ----------------

    @commands.command(name="lb", aliases=["leaderboard", "top"])
    @commands.guild_only()
    async def lb(self, ctx: commands.Context, limit: int | None = None):
        """
        Usage:
          !lb        -> top 10 by total voice time
          !lb 5      -> top 5 (1-20)
        """
        limit = clamp_limit(
            limit,
            default=self.settings.leaderboard_default_limit,
            maximum=self.settings.leaderboard_max_limit,
        )

        try:
            ranked = await self.ledger.top(limit)
        except LedgerUnavailableError as exc:
            log.error("leaderboard read failed: %s", exc)
            return await ctx.reply("❌ Couldn't read voice time right now. Try again in a bit.")

        if not ranked:
            return await ctx.reply("No voice time recorded yet. Hop in VC first.")

        rows = await self.build_rows(ctx.guild, ranked)
        try:
            png = await asyncio.to_thread(
                render_leaderboard,
                rows,
                title=f"{ctx.guild.name} · Voice Leaderboard",
                subtitle=f"Top {len(rows)} by total time in voice",
            )
        except (OSError, ValueError) as exc:
            log.exception("leaderboard render failed")
            return await ctx.reply(f"❌ Couldn't draw the leaderboard (`{type(exc).__name__}`).")

        await ctx.reply(file=discord.File(io.BytesIO(png), filename="leaderboard.png"))

    @commands.command(name="hours")
    @commands.guild_only()
    async def hours(self, ctx: commands.Context, member: discord.Member | None = None):
        """
        Usage:
          !hours           -> your total voice time
          !hours @user     -> someone else's
        """
        member = member or ctx.author
        pid = str(member.id)

        try:
            total = await self.ledger.get_total(pid)
            started = await self.ledger.get_session_start(pid)
        except LedgerUnavailableError as exc:
            log.error("hours read failed: %s", exc)
            return await ctx.reply("❌ Couldn't read voice time right now. Try again in a bit.")

        live = max(0, now_utc_ms() - started) if started is not None else 0
        msg = f"**{member.display_name}** — **{fmt_duration(total + live)}** in voice"
        if live:
            msg += f" (current session: {fmt_duration(live)})"
        await ctx.reply(msg)
