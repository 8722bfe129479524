# vcpin/services/transport.py
from __future__ import annotations

import asyncio
import contextlib
import importlib.util
import logging
from typing import Callable

import discord

from vcpin.core.voice_state import VoiceStatus
from vcpin.errors import ConfigError, VoiceConnectionLost, VoiceTransportError

log = logging.getLogger(__name__)

StatusListener = Callable[[VoiceStatus, VoiceStatus], None]


class VoiceHandle:
    """
    One voice connection attempt.

    Starts in SIGNALLING and reports every status change to its listeners
    as (old, new). Listener and waiter bookkeeping lives here; subclasses
    drive _set_status() from the real transport.
    """

    def __init__(self, channel_id: int):
        self._channel_id = channel_id
        self._status = VoiceStatus.SIGNALLING
        self._listeners: list[StatusListener] = []
        self._waiters: list[tuple[frozenset, asyncio.Future]] = []
        self.player = None

    @property
    def status(self) -> VoiceStatus:
        return self._status

    @property
    def channel_id(self) -> int:
        return self._channel_id

    # ---------- listeners ----------

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ---------- status ----------

    def _set_status(self, new: VoiceStatus) -> None:
        old = self._status
        if new is old:
            return
        self._status = new

        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                log.exception("[VC] status listener failed (%s -> %s)", old.value, new.value)

        for targets, fut in list(self._waiters):
            if fut.done():
                continue
            if new in targets:
                fut.set_result(new)
            elif new is VoiceStatus.DESTROYED:
                fut.set_exception(VoiceConnectionLost("voice connection destroyed"))

    async def wait_for(self, *targets: VoiceStatus, timeout: float) -> VoiceStatus:
        """
        Wait until the handle reports one of `targets`.
        Raises asyncio.TimeoutError past the deadline and VoiceConnectionLost
        if the handle is destroyed first.
        """
        wanted = frozenset(targets)
        if self._status in wanted:
            return self._status
        if self._status is VoiceStatus.DESTROYED:
            raise VoiceConnectionLost("voice connection destroyed")

        fut = asyncio.get_running_loop().create_future()
        entry = (wanted, fut)
        self._waiters.append(entry)
        try:
            return await asyncio.wait_for(fut, timeout)
        finally:
            self._waiters.remove(entry)

    # ---------- transport hooks ----------

    def subscribe(self, player) -> None:
        self.player = player

    async def destroy(self) -> None:
        self._set_status(VoiceStatus.DESTROYED)


class DiscordVoiceHandle(VoiceHandle):
    """
    discord.py VoiceClient behind the VoiceHandle contract.

    discord.py has no public state events, so a small monitor task polls the
    client:
    - connected -> READY
    - link lost -> DISCONNECTED
    - still lost but the client is still the guild's voice client, i.e.
      discord.py's own reconnect loop is re-handshaking -> CONNECTING
    - client gone from the guild (reconnect gave up, or kicked) -> DESTROYED
    """

    def __init__(
        self,
        channel: discord.VoiceChannel,
        *,
        self_deaf: bool,
        self_mute: bool,
        connect_timeout: float,
        poll_interval: float = 1.0,
    ):
        super().__init__(channel.id)
        self.channel = channel
        self.self_deaf = self_deaf
        self.self_mute = self_mute
        self.connect_timeout = connect_timeout
        self.poll_interval = poll_interval
        self.voice_client: discord.VoiceClient | None = None
        self._task: asyncio.Task | None = None

    @property
    def channel_id(self) -> int:
        vc = self.voice_client
        if vc is not None and vc.channel is not None:
            return vc.channel.id
        return self._channel_id

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"voice-handle-{self.channel.id}")

    def subscribe(self, player) -> None:
        super().subscribe(player)
        self._play()

    def _play(self) -> None:
        vc = self.voice_client
        if self.player is None or vc is None or not vc.is_connected():
            return
        try:
            self.player.attach(vc)
        except discord.ClientException as exc:
            log.error("[Player] Could not start silence: %s", exc)

    async def _run(self) -> None:
        guild = self.channel.guild

        # leftover client from a crashed attempt would make connect() refuse
        stale = guild.voice_client
        if stale is not None:
            try:
                await stale.disconnect(force=True)
            except Exception as exc:
                log.warning("[VC] could not drop stale voice client: %s", exc)

        self._set_status(VoiceStatus.CONNECTING)
        try:
            vc = await self.channel.connect(
                timeout=self.connect_timeout,
                reconnect=True,
                self_deaf=self.self_deaf,
                self_mute=self.self_mute,
            )
        except (asyncio.TimeoutError, discord.DiscordException, RuntimeError, OSError) as exc:
            log.warning("[VC] Voice connect failed: %s", exc)
            self._set_status(VoiceStatus.DESTROYED)
            return

        self.voice_client = vc
        self._set_status(VoiceStatus.READY)
        self._play()
        await self._monitor(vc)

    async def _monitor(self, vc: discord.VoiceClient) -> None:
        guild = self.channel.guild
        while True:
            await asyncio.sleep(self.poll_interval)

            if guild.voice_client is not vc:
                self._set_status(VoiceStatus.DESTROYED)
                return

            if vc.is_connected():
                if self._status is not VoiceStatus.READY:
                    if self._status is VoiceStatus.DISCONNECTED:
                        self._set_status(VoiceStatus.CONNECTING)
                    self._set_status(VoiceStatus.READY)
                    self._play()
            elif self._status is VoiceStatus.READY:
                self._set_status(VoiceStatus.DISCONNECTED)
            elif self._status is VoiceStatus.DISCONNECTED:
                self._set_status(VoiceStatus.CONNECTING)

    async def destroy(self) -> None:
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                log.exception("[VC] voice handle task for %s had failed", self._channel_id)

        if self.player is not None:
            self.player.stop()

        vc = self.voice_client or self.channel.guild.voice_client
        if vc is not None:
            try:
                await vc.disconnect(force=True)
            except Exception as exc:
                log.warning("[VC] disconnect during destroy failed: %s", exc)

        self._set_status(VoiceStatus.DESTROYED)


class DiscordVoiceTransport:
    """Guild/channel lookups and joins on top of a discord.py client."""

    def __init__(self, client: discord.Client, *, connect_timeout: float = 20.0, poll_interval: float = 1.0):
        self.client = client
        self.connect_timeout = connect_timeout
        self.poll_interval = poll_interval

    async def resolve_guild(self, guild_id: int) -> discord.Guild:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            raise ConfigError(f"Guild {guild_id} not found. Check GUILD_ID.")
        return guild

    async def resolve_channel(self, guild: discord.Guild, channel_id: int) -> discord.VoiceChannel:
        channel = guild.get_channel(channel_id)
        if channel is None:
            try:
                channel = await guild.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden) as exc:
                raise ConfigError(f"VOICE_CHANNEL_ID {channel_id} not found or not accessible.") from exc
            except discord.HTTPException as exc:
                raise VoiceTransportError(f"Channel lookup failed: {exc}") from exc

        if not isinstance(channel, discord.VoiceChannel):
            raise ConfigError(f"VOICE_CHANNEL_ID {channel_id} is not a voice channel.")
        return channel

    async def join(self, channel: discord.VoiceChannel, *, self_deaf: bool, self_mute: bool) -> DiscordVoiceHandle:
        handle = DiscordVoiceHandle(
            channel,
            self_deaf=self_deaf,
            self_mute=self_mute,
            connect_timeout=self.connect_timeout,
            poll_interval=self.poll_interval,
        )
        handle.start()
        return handle


def voice_dependency_report() -> str:
    lines = [
        f"discord.py: {discord.__version__}",
        f"PyNaCl: {'found' if importlib.util.find_spec('nacl') else 'MISSING (voice will not work)'}",
        f"opus loaded: {discord.opus.is_loaded()} (not needed for pre-encoded silence)",
    ]
    return "\n".join(lines)
