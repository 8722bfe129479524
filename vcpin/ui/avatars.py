# vcpin/ui/avatars.py
from __future__ import annotations

import logging

import discord

log = logging.getLogger(__name__)


class AvatarCache:
    """
    In-memory avatar bytes keyed by asset URL.
    A changed avatar has a new URL, so entries never go stale; the oldest
    entries are dropped once max_entries is reached.
    """

    def __init__(self, *, size: int = 64, max_entries: int = 128):
        self.size = size
        self.max_entries = max_entries
        self._data: dict[str, bytes] = {}

    def __len__(self) -> int:
        return len(self._data)

    async def get(self, member: discord.abc.User | None) -> bytes | None:
        if member is None:
            return None

        asset = member.display_avatar.replace(size=self.size, static_format="png")
        key = str(asset.url)
        if key in self._data:
            return self._data[key]

        try:
            data = await asset.read()
        except discord.DiscordException as exc:
            log.debug("avatar fetch failed for %s: %s", member.id, exc)
            return None

        while len(self._data) >= self.max_entries:
            self._data.pop(next(iter(self._data)))
        self._data[key] = data
        return data
