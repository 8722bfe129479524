# vcpin/services/supervisor.py
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Callable

from vcpin.core.pending import PendingAction
from vcpin.core.voice_state import (
    RECOVERY_STATUSES,
    Reaction,
    SupervisorPhase,
    VoiceStatus,
    phase_for,
    plan_reaction,
)
from vcpin.errors import ConfigError, VoiceConnectionLost, VoiceTransportError
from vcpin.services.silence import SilencePlayer

log = logging.getLogger(__name__)

_WAIT_FAILURES = (asyncio.TimeoutError, VoiceConnectionLost)


@dataclass(frozen=True)
class StateChange:
    handle: object
    old: VoiceStatus
    new: VoiceStatus


class ConnectionSupervisor:
    """
    Keeps the bot parked in one voice channel.

    Lifecycle: create -> connect() -> observe -> [teardown] -> connect() ...
    and close() once at shutdown.

    Owns:
    - the single authoritative (connection, player) pair
    - the single-flight join flag
    - one observer on the authoritative connection, fed into an event queue
    - one pending rebuild timer (PendingAction, cancel-and-replace)
    """

    def __init__(
        self,
        transport,
        guild_id: int,
        channel_id: int,
        *,
        ready_timeout: float = 20.0,
        quick_reconnect_timeout: float = 5.0,
        rebuild_delay: float = 5.0,
        player_factory: Callable[[], object] = SilencePlayer,
    ):
        self.transport = transport
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.ready_timeout = ready_timeout
        self.quick_reconnect_timeout = quick_reconnect_timeout
        self.rebuild_delay = rebuild_delay
        self.player_factory = player_factory

        self.phase = SupervisorPhase.IDLE
        self.connection = None
        self.player = None

        self._joining = False
        self._closed = False
        self._observer: tuple[object, Callable] | None = None
        self._events: asyncio.Queue[StateChange] = asyncio.Queue()
        self._pump: asyncio.Task | None = None
        self._watch: asyncio.Task | None = None
        self._rebuild = PendingAction("voice-rebuild")

    # ---------------- introspection ----------------

    @property
    def joining(self) -> bool:
        return self._joining

    @property
    def rebuild_pending(self) -> bool:
        return self._rebuild.pending

    @property
    def observer_count(self) -> int:
        return 0 if self._observer is None else 1

    @property
    def status(self) -> VoiceStatus | None:
        return self.connection.status if self.connection is not None else None

    # ---------------- connect ----------------

    async def connect(self) -> bool:
        """
        Join the target channel unless a join is already running or a live
        connection already exists. Returns True only when a new connection
        was promoted.
        """
        if self._closed:
            log.info("[VC] connect: supervisor closed, skipping.")
            return False
        if self._joining:
            log.info("[VC] connect: already running, skipping.")
            return False

        self._joining = True
        try:
            return await self._connect_once()
        finally:
            self._joining = False

    async def _connect_once(self) -> bool:
        try:
            guild = await self.transport.resolve_guild(self.guild_id)
            channel = await self.transport.resolve_channel(guild, self.channel_id)
        except ConfigError as exc:
            # a wrong id won't fix itself: no retry
            log.error("[VC] %s", exc)
            if self.connection is None:
                self.phase = SupervisorPhase.IDLE
            return False
        except VoiceTransportError as exc:
            log.warning("[VC] Lookup failed, retrying in %.1fs: %s", self.rebuild_delay, exc)
            self.schedule_rebuild(self.rebuild_delay, reason="lookup failed")
            return False

        if self.connection is not None and self.connection.status is not VoiceStatus.DESTROYED:
            log.info("[VC] Already connected/connecting, status: %s", self.connection.status.value)
            return False

        # drop the dead handle before creating its replacement
        if self.connection is not None:
            await self._release(self.connection, self.player)
            self.connection = None
            self.player = None

        log.info("[VC] Joining voice channel %s...", self.channel_id)
        self.phase = SupervisorPhase.JOINING
        try:
            handle = await self.transport.join(channel, self_deaf=True, self_mute=False)
        except VoiceTransportError as exc:
            log.error("[VC] Join failed: %s", exc)
            self.phase = SupervisorPhase.DESTROYED
            self.schedule_rebuild(self.rebuild_delay, reason="join failed")
            return False

        # fresh player each time
        player = self.player_factory()
        handle.subscribe(player)

        try:
            await handle.wait_for(VoiceStatus.READY, timeout=self.ready_timeout)
        except _WAIT_FAILURES as exc:
            log.error("[VC] Failed to become Ready: %s", exc or type(exc).__name__)
            await self._release(handle, player)
            self.phase = SupervisorPhase.DESTROYED
            self.schedule_rebuild(self.rebuild_delay, reason="ready timeout")
            return False

        if self._closed:
            await self._release(handle, player)
            return False

        self.connection = handle
        self.player = player
        self._attach_observer(handle)
        self.phase = SupervisorPhase.READY
        log.info("🔊 Connected and streaming silence.")
        return True

    # ---------------- observer ----------------

    def _attach_observer(self, handle) -> None:
        self._detach_observer()

        def on_change(old: VoiceStatus, new: VoiceStatus) -> None:
            self._events.put_nowait(StateChange(handle, old, new))

        handle.add_listener(on_change)
        self._observer = (handle, on_change)

        if self._pump is None or self._pump.done():
            self._pump = asyncio.create_task(self._pump_events(), name="voice-supervisor-events")

    def _detach_observer(self) -> None:
        if self._observer is None:
            return
        handle, callback = self._observer
        handle.remove_listener(callback)
        self._observer = None

    async def _pump_events(self) -> None:
        while True:
            change = await self._events.get()
            try:
                await self._on_state_change(change)
            except Exception:
                log.exception("[VC] state change handling failed")

    async def _on_state_change(self, change: StateChange) -> None:
        handle = change.handle
        if handle is not self.connection:
            log.debug("[VC] ignoring %s from superseded connection", change.new.value)
            return

        log.info("[VC] State: %s -> %s", change.old.value, change.new.value)
        self.phase = phase_for(change.new)

        reaction = plan_reaction(change.new)
        if reaction is Reaction.SETTLED:
            return
        if reaction is Reaction.AWAIT_READY:
            self._replace_watch(self._await_ready(handle))
        elif reaction is Reaction.RECOVER:
            self._replace_watch(self._await_recovery(handle))
        elif reaction is Reaction.REBUILD:
            log.warning("[VC] Destroyed. Rejoining soon...")
            self._cancel_watch()
            await self._teardown(handle)
            self.schedule_rebuild(self.rebuild_delay, reason="destroyed")

    # ---------------- watches ----------------

    def _replace_watch(self, coro) -> None:
        self._cancel_watch()
        self._watch = asyncio.create_task(coro, name="voice-supervisor-watch")

    def _cancel_watch(self) -> None:
        watch, self._watch = self._watch, None
        if watch is not None and not watch.done() and watch is not asyncio.current_task():
            watch.cancel()

    async def _await_recovery(self, handle) -> None:
        try:
            await handle.wait_for(*RECOVERY_STATUSES, timeout=self.quick_reconnect_timeout)
            log.info("[VC] Quick reconnect OK")
        except _WAIT_FAILURES:
            log.warning("[VC] Quick reconnect failed. Rebuilding...")
            await self._teardown(handle)
            self.schedule_rebuild(self.rebuild_delay, reason="quick reconnect failed")

    async def _await_ready(self, handle) -> None:
        try:
            await handle.wait_for(VoiceStatus.READY, timeout=self.ready_timeout)
            log.info("✅ Transitioned to Ready.")
        except _WAIT_FAILURES:
            log.warning("[VC] Stuck during transition. Rebuilding...")
            await self._teardown(handle)
            self.schedule_rebuild(self.rebuild_delay, reason="stuck in transition")

    # ---------------- teardown / rebuild ----------------

    async def _release(self, handle, player) -> None:
        """Stop and destroy `handle`. Never raises: callers schedule a rebuild next."""
        handle.remove_all_listeners()
        try:
            if player is not None:
                player.stop()
            await handle.destroy()
        except Exception:
            log.exception("[VC] releasing connection in channel %s failed", handle.channel_id)

    async def _teardown(self, handle) -> None:
        """Demote and destroy `handle` if it is still the authoritative one."""
        if handle is not self.connection:
            return
        self._detach_observer()
        player = self.player
        self.connection = None
        self.player = None
        self.phase = SupervisorPhase.DESTROYED
        await self._release(handle, player)

    def schedule_rebuild(self, delay: float, *, reason: str, force: bool = False) -> None:
        """
        Debounced rebuild: replaces any rebuild that hasn't fired yet,
        so a burst of triggers ends in one connect().
        """
        if self._closed:
            return
        log.info("[VC] Rebuild in %.1fs (%s)", delay, reason)
        self._rebuild.replace(delay, lambda: self._rebuild_now(force=force))

    async def _rebuild_now(self, *, force: bool = False) -> bool:
        current = self.connection
        if current is not None and current.status is not VoiceStatus.DESTROYED:
            if force or current.channel_id != self.channel_id:
                log.info("[VC] Tearing down connection in channel %s before rejoin", current.channel_id)
                self._cancel_watch()
                await self._teardown(current)
        return await self.connect()

    # ---------------- shutdown ----------------

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        await self._rebuild.aclose()

        for task in (self._watch, self._pump):
            if task is None or task.done() or task is asyncio.current_task():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._watch = None
        self._pump = None

        handle = self.connection
        if handle is not None:
            await self._teardown(handle)
        self.phase = SupervisorPhase.DESTROYED
        log.info("[VC] Supervisor closed.")
