# vcpin/errors.py
from __future__ import annotations


class ConfigError(RuntimeError):
    """
    Bad or missing configuration.
    Covers env vars and guild/channel ids that don't resolve.
    Never retried automatically: an operator has to fix it.
    """


class LedgerUnavailableError(RuntimeError):
    """Storage fault while reading or writing voice time."""


class VoiceTransportError(RuntimeError):
    """Transient voice fault. Handled by scheduling a rebuild."""


class VoiceConnectionLost(VoiceTransportError):
    """A voice handle was destroyed while something was waiting on it."""
