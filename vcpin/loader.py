# vcpin/loader.py
from __future__ import annotations

import logging

from vcpin.cogs.admin import AdminCog
from vcpin.cogs.errors import ErrorHandlerCog
from vcpin.cogs.leaderboard import LeaderboardCog
from vcpin.cogs.presence import PresenceCog

log = logging.getLogger(__name__)


async def load_all(bot, settings, *, ledger, supervisor, tracker):
    log.info("[VCPin] Starting loader...")

    # presence is the only cog the voice path depends on: let it fail loudly
    await bot.add_cog(PresenceCog(bot, settings, tracker, supervisor))
    log.info("[VCPin] ✅ PresenceCog loaded")

    optional = (
        ("LeaderboardCog", lambda: LeaderboardCog(bot, settings, ledger)),
        ("AdminCog", lambda: AdminCog(bot, settings, ledger, supervisor)),
        ("ErrorHandlerCog", lambda: ErrorHandlerCog(bot)),
    )
    for name, make in optional:
        try:
            await bot.add_cog(make())
            log.info("[VCPin] ✅ %s loaded", name)
        except Exception:
            log.exception("[VCPin] ❌ %s FAILED", name)

    log.info("[VCPin] Loaded cogs: %s", ", ".join(bot.cogs.keys()))
