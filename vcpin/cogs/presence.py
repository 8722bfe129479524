# vcpin/cogs/presence.py
from __future__ import annotations

import logging

import discord
from discord.ext import commands

from vcpin.core.presence import Movement

log = logging.getLogger(__name__)


class PresenceCog(commands.Cog):
    """
    Voice presence wiring:
    - Only the configured guild is tracked
    - Ignores other bots
    - AFK / ignored channels count as "not in voice"
    - Seeds sessions for whoever is already in VC on the first ready,
      then asks the supervisor to join (again on every ready; connect is idempotent)
    - The bot's own moves go to the tracker as is_self so it can rejoin
    """

    def __init__(self, bot: commands.Bot, settings, tracker, supervisor):
        self.bot = bot
        self.settings = settings
        self.tracker = tracker
        self.supervisor = supervisor
        self._bootstrapped = False

    # ---------------- helpers ----------------

    def _is_ignored(self, channel) -> bool:
        if channel.id in self.settings.ignored_channel_ids:
            return True
        if self.settings.ignore_afk_channel:
            afk = getattr(channel.guild, "afk_channel", None)
            if afk is not None and afk.id == channel.id:
                return True
        return False

    def _tracked_channel_id(self, state: discord.VoiceState | None) -> int | None:
        channel = state.channel if state is not None else None
        if channel is None or self._is_ignored(channel):
            return None
        return channel.id

    def _is_self(self, member: discord.abc.User) -> bool:
        return self.bot.user is not None and member.id == self.bot.user.id

    # ---------------- bootstrap ----------------

    async def seed_current_sessions(self) -> int:
        guild = self.bot.get_guild(self.settings.guild_id)
        if guild is None:
            log.error("[TIME] Guild %s not found, nothing to seed. Check GUILD_ID.", self.settings.guild_id)
            return 0

        ids = []
        for ch in [*guild.voice_channels, *guild.stage_channels]:
            if self._is_ignored(ch):
                continue
            ids.extend(str(m.id) for m in ch.members if not m.bot)

        return await self.tracker.seed(ids)

    @commands.Cog.listener()
    async def on_ready(self):
        log.info("✅ Logged in as %s", self.bot.user)
        if not self._bootstrapped:
            self._bootstrapped = True
            await self.seed_current_sessions()
        await self.supervisor.connect()

    # ---------------- voice state updates ----------------

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ):
        if member.guild.id != self.settings.guild_id:
            return

        if self._is_self(member):
            await self.tracker.handle(
                Movement(
                    participant_id=str(member.id),
                    before_channel_id=before.channel.id if before.channel else None,
                    after_channel_id=after.channel.id if after.channel else None,
                    is_self=True,
                )
            )
            return

        if member.bot:
            return

        await self.tracker.handle(
            Movement(
                participant_id=str(member.id),
                before_channel_id=self._tracked_channel_id(before),
                after_channel_id=self._tracked_channel_id(after),
            )
        )
