# vcpin/core/voice_state.py
from __future__ import annotations

from enum import Enum


class VoiceStatus(str, Enum):
    """Status reported by a single voice connection handle."""

    SIGNALLING = "signalling"
    CONNECTING = "connecting"
    READY = "ready"
    DISCONNECTED = "disconnected"
    DESTROYED = "destroyed"


class SupervisorPhase(str, Enum):
    """
    The supervisor's own view of voice presence.

    IDLE and JOINING only exist on the supervisor side; the rest mirror
    whatever the authoritative handle last reported.
    """

    IDLE = "idle"
    JOINING = "joining"
    SIGNALLING = "signalling"
    CONNECTING = "connecting"
    READY = "ready"
    DISCONNECTED = "disconnected"
    DESTROYED = "destroyed"


class Reaction(str, Enum):
    SETTLED = "settled"
    AWAIT_READY = "await_ready"
    RECOVER = "recover"
    REBUILD = "rebuild"


_REACTIONS = {
    VoiceStatus.READY: Reaction.SETTLED,
    VoiceStatus.SIGNALLING: Reaction.AWAIT_READY,
    VoiceStatus.CONNECTING: Reaction.AWAIT_READY,
    VoiceStatus.DISCONNECTED: Reaction.RECOVER,
    VoiceStatus.DESTROYED: Reaction.REBUILD,
}


def plan_reaction(status: VoiceStatus) -> Reaction:
    """
    Pure transition function for the state-change observer.

      READY                    -> nothing to do
      SIGNALLING / CONNECTING  -> must reach READY within the long timeout
      DISCONNECTED             -> one short chance to re-enter SIGNALLING/CONNECTING
      DESTROYED                -> rebuild from scratch
    """
    return _REACTIONS[VoiceStatus(status)]


def phase_for(status: VoiceStatus) -> SupervisorPhase:
    return SupervisorPhase(VoiceStatus(status).value)


# statuses a RECOVER watch is waiting to see
RECOVERY_STATUSES = (VoiceStatus.SIGNALLING, VoiceStatus.CONNECTING)
