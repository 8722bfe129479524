# vcpin/core/pending.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

log = logging.getLogger(__name__)


class PendingAction:
    """
    Single-slot deferred action.

    At most one call is waiting at any time: scheduling a new one cancels
    whatever was pending. Once the delay elapses the call leaves the slot
    and runs as its own task, so a later replace() never cancels work that
    already started.
    """

    def __init__(self, name: str):
        self.name = name
        self._timer: asyncio.TimerHandle | None = None
        self._running: set[asyncio.Task] = set()
        self.fired = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def replace(self, delay: float, action: Callable[[], Awaitable[object]]) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()
        self._timer = loop.call_later(max(0.0, float(delay)), self._fire, action)

    def cancel(self) -> bool:
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        return True

    def _fire(self, action: Callable[[], Awaitable[object]]) -> None:
        self._timer = None
        self.fired += 1
        task = asyncio.ensure_future(action())
        self._running.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("[%s] deferred action failed", self.name, exc_info=exc)

    async def aclose(self) -> None:
        self.cancel()
        tasks = list(self._running)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
