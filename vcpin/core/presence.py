# vcpin/core/presence.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from vcpin.core.timecore import ms_to_minutes, now_utc_ms
from vcpin.errors import LedgerUnavailableError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Movement:
    """One participant's voice move. None = not in a tracked channel."""

    participant_id: str
    before_channel_id: int | None
    after_channel_id: int | None
    is_self: bool = False


class PresenceTracker:
    """
    Turns voice moves into ledger sessions.

    - humans: join -> begin, leave -> end, hop -> end + begin at one timestamp
    - the bot itself: anywhere but the target channel -> debounced rejoin

    Moves are handled one at a time in arrival order; that lock is the only
    state kept here.
    """

    def __init__(
        self,
        ledger,
        supervisor,
        *,
        target_channel_id: int,
        rejoin_delay: float = 3.0,
        clock: Callable[[], int] = now_utc_ms,
    ):
        self.ledger = ledger
        self.supervisor = supervisor
        self.target_channel_id = target_channel_id
        self.rejoin_delay = rejoin_delay
        self.clock = clock
        self._order = asyncio.Lock()

    async def handle(self, move: Movement) -> None:
        async with self._order:
            if move.is_self:
                self._on_self_moved(move)
                return

            try:
                await self._account(move)
            except LedgerUnavailableError as exc:
                # lost accounting must not take the voice path down with it
                log.error("[TIME] ledger write failed for %s: %s", move.participant_id, exc)

    def _on_self_moved(self, move: Movement) -> None:
        if move.after_channel_id == self.target_channel_id:
            return
        log.warning("⚠️ Bot left/moved from target VC (now in %s). Rejoining...", move.after_channel_id)
        self.supervisor.schedule_rebuild(self.rejoin_delay, reason="displaced from target channel")

    async def _account(self, move: Movement) -> None:
        pid = move.participant_id
        was_in = move.before_channel_id is not None
        now_in = move.after_channel_id is not None

        if not was_in and now_in:
            await self.ledger.begin_session(pid, self.clock())

        elif was_in and not now_in:
            delta = await self.ledger.end_session(pid, self.clock())
            if delta > 0:
                log.info("[TIME] +%.1fm to %s", ms_to_minutes(delta), pid)

        elif was_in and now_in and move.before_channel_id != move.after_channel_id:
            when = self.clock()
            delta = await self.ledger.end_session(pid, when)
            await self.ledger.begin_session(pid, when)
            if delta > 0:
                log.info("[TIME] move: +%.1fm to %s", ms_to_minutes(delta), pid)

    async def seed(self, participant_ids: Iterable[str]) -> int:
        """
        Open a session for everyone already in voice at startup.
        Start time is "now" (true join time is unknown). Returns how many were seeded.
        """
        unique = list(dict.fromkeys(str(p) for p in participant_ids))
        when = self.clock()
        seeded = 0
        async with self._order:
            try:
                for pid in unique:
                    await self.ledger.seed_in_progress(pid, when)
                    seeded += 1
            except LedgerUnavailableError as exc:
                log.error("[TIME] seeding stopped after %d/%d: %s", seeded, len(unique), exc)
        log.info("[TIME] Seeded sessions for %d current VC members.", seeded)
        return seeded
