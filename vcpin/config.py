from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv

from vcpin.errors import ConfigError

log = logging.getLogger(__name__)


def _parse_bool(v: str | None, default: bool) -> bool:
    s = (v or "").strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


def _require_int(name: str) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        raise ConfigError(f"Missing {name}. Set it in the environment or .env.")
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a numeric Discord id, got {raw!r}.") from None


def _parse_id_list(raw: str | None) -> tuple[int, ...]:
    ids = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise ConfigError(f"IGNORED_CHANNEL_IDS contains a non-numeric id: {part!r}") from None
    return tuple(ids)


@dataclass(frozen=True)
class Settings:
    token: str
    guild_id: int
    voice_channel_id: int

    # ---------------- Storage / process ----------------
    db_path: str = "./data.db"
    port: int = 3000
    command_prefix: str = "!"
    log_level: str = "INFO"

    # ---------------- Voice timing (seconds) ----------------
    ready_timeout_seconds: float = 20.0            # join -> Ready
    quick_reconnect_timeout_seconds: float = 5.0   # Disconnected -> back to Ready
    rebuild_delay_seconds: float = 5.0             # backoff after a transport fault
    displaced_rejoin_delay_seconds: float = 3.0    # bot moved/kicked out of the target VC

    # ---------------- Tracking ----------------
    ignore_afk_channel: bool = True
    ignored_channel_ids: tuple[int, ...] = ()

    # ---------------- Leaderboard ----------------
    leaderboard_default_limit: int = 10
    leaderboard_max_limit: int = 20


def load_settings() -> Settings:
    # .env for local runs; never overrides real env vars
    load_dotenv(override=False)

    token = (
        os.getenv("DISCORD_TOKEN", "").strip()
        or os.getenv("TOKEN", "").strip()
        or os.getenv("DISCORD_BOT_TOKEN", "").strip()
    )
    if not token:
        raise ConfigError(
            "Missing bot token.\n"
            "Set DISCORD_TOKEN=... (fallbacks: TOKEN / DISCORD_BOT_TOKEN)."
        )
    log.info("[ENV] DISCORD_TOKEN present (len=%d)", len(token))

    guild_id = _require_int("GUILD_ID")
    voice_channel_id = _require_int("VOICE_CHANNEL_ID")

    port_raw = (os.getenv("PORT") or "").strip() or "3000"
    try:
        port = int(port_raw)
    except ValueError:
        raise ConfigError(f"PORT must be a number, got {port_raw!r}.") from None

    return Settings(
        token=token,
        guild_id=guild_id,
        voice_channel_id=voice_channel_id,
        db_path=(os.getenv("DB_PATH") or "").strip() or "./data.db",
        port=port,
        command_prefix=(os.getenv("COMMAND_PREFIX") or "").strip() or "!",
        log_level=(os.getenv("LOG_LEVEL") or "").strip().upper() or "INFO",
        ignore_afk_channel=_parse_bool(os.getenv("IGNORE_AFK_CHANNEL"), True),
        ignored_channel_ids=_parse_id_list(os.getenv("IGNORED_CHANNEL_IDS")),
    )
