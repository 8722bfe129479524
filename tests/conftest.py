"""Shared fixtures: a temp SQLite ledger and an in-memory voice transport."""

import asyncio

import pytest
import pytest_asyncio

from vcpin.core.voice_state import VoiceStatus
from vcpin.services.db import Database
from vcpin.services.ledger import SessionLedger
from vcpin.services.supervisor import ConnectionSupervisor
from vcpin.services.transport import VoiceHandle


class FakeHandle(VoiceHandle):
    """VoiceHandle whose status is driven by the test."""

    def __init__(self, channel_id: int):
        super().__init__(channel_id)
        self.destroy_calls = 0
        self.destroy_error: Exception | None = None
        self.moved_to: int | None = None

    @property
    def channel_id(self) -> int:
        return self.moved_to if self.moved_to is not None else self._channel_id

    def set(self, status: VoiceStatus) -> None:
        self._set_status(status)

    async def destroy(self) -> None:
        self.destroy_calls += 1
        if self.destroy_error is not None:
            raise self.destroy_error
        await super().destroy()


class FakePlayer:
    def __init__(self):
        self.stopped = 0

    def stop(self) -> None:
        self.stopped += 1


class FakeTransport:
    def __init__(self, *, auto_ready: bool = True):
        self.auto_ready = auto_ready
        self.guild_error: Exception | None = None
        self.channel_error: Exception | None = None
        self.handles: list[FakeHandle] = []
        self.join_kwargs: list[dict] = []

    @property
    def join_count(self) -> int:
        return len(self.handles)

    async def resolve_guild(self, guild_id):
        if self.guild_error is not None:
            raise self.guild_error
        return {"id": guild_id}

    async def resolve_channel(self, guild, channel_id):
        if self.channel_error is not None:
            raise self.channel_error
        return {"id": channel_id, "guild": guild}

    async def join(self, channel, *, self_deaf, self_mute):
        handle = FakeHandle(channel["id"])
        self.handles.append(handle)
        self.join_kwargs.append({"self_deaf": self_deaf, "self_mute": self_mute})
        if self.auto_ready:
            asyncio.get_running_loop().call_soon(handle.set, VoiceStatus.READY)
        return handle


class FakeSupervisor:
    def __init__(self):
        self.rebuilds: list[tuple[float, str]] = []

    def schedule_rebuild(self, delay, *, reason, force=False):
        self.rebuilds.append((delay, reason))


class Clock:
    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(str(tmp_path / "vcpin.db"))
    await db.connect()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def ledger(database):
    return SessionLedger(database)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest_asyncio.fixture
async def make_supervisor():
    created: list[ConnectionSupervisor] = []

    def factory(transport, **overrides):
        opts = {
            "ready_timeout": 0.05,
            "quick_reconnect_timeout": 0.05,
            "rebuild_delay": 0.05,
            "player_factory": FakePlayer,
        }
        opts.update(overrides)
        sup = ConnectionSupervisor(transport, 1, 100, **opts)
        created.append(sup)
        return sup

    yield factory

    for sup in created:
        await sup.close()
