# vcpin/services/silence.py
from __future__ import annotations

import logging

import discord

log = logging.getLogger(__name__)

# Opus "silence" frame
SILENCE_FRAME = b"\xf8\xff\xfe"


class SilenceSource(discord.AudioSource):
    """
    Endless Opus silence.

    The voice player reads one frame every 20ms, so this keeps packets
    flowing and the voice session alive without carrying any audio.
    """

    def __init__(self):
        self.frames_read = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self) -> bytes:
        if self._closed:
            return b""
        self.frames_read += 1
        return SILENCE_FRAME

    def is_opus(self) -> bool:
        # already encoded; discord.py skips its encoder
        return True

    def cleanup(self) -> None:
        self._closed = True


class SilencePlayer:
    """One per connection attempt; never reused across rebuilds."""

    def __init__(self):
        self.source = SilenceSource()
        self.voice_client: discord.VoiceClient | None = None
        self.errors = 0

    def attach(self, voice_client) -> None:
        """(Re)start playback on a connected voice client."""
        self.voice_client = voice_client
        if voice_client.is_playing():
            return
        if self.source.closed:
            self.source = SilenceSource()
        voice_client.play(self.source, after=self._after)

    def _after(self, error: Exception | None) -> None:
        # Runs on discord.py's player thread. Audio faults are logged only:
        # they say nothing about the voice session itself.
        if error is not None:
            self.errors += 1
            log.error("[Player] Error: %s", error, exc_info=error)

    def stop(self) -> None:
        vc = self.voice_client
        if vc is not None and vc.is_playing():
            vc.stop()
        self.source.cleanup()
