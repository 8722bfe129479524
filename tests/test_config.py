import pytest

from vcpin.config import Settings, load_settings
from vcpin.errors import ConfigError

ENV_KEYS = (
    "DISCORD_TOKEN",
    "TOKEN",
    "DISCORD_BOT_TOKEN",
    "GUILD_ID",
    "VOICE_CHANNEL_ID",
    "DB_PATH",
    "PORT",
    "COMMAND_PREFIX",
    "LOG_LEVEL",
    "IGNORE_AFK_CHANNEL",
    "IGNORED_CHANNEL_IDS",
)


@pytest.fixture
def env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("vcpin.config.load_dotenv", lambda **kwargs: False)
    monkeypatch.setenv("DISCORD_TOKEN", "abc.def")
    monkeypatch.setenv("GUILD_ID", "111")
    monkeypatch.setenv("VOICE_CHANNEL_ID", "222")
    return monkeypatch


def test_defaults(env):
    s = load_settings()

    assert s == Settings(token="abc.def", guild_id=111, voice_channel_id=222)
    assert s.db_path == "./data.db"
    assert s.port == 3000
    assert s.ready_timeout_seconds == 20.0
    assert s.rebuild_delay_seconds == 5.0
    assert s.displaced_rejoin_delay_seconds < s.rebuild_delay_seconds


def test_overrides(env):
    env.setenv("DB_PATH", "/data/vc.db")
    env.setenv("PORT", "8080")
    env.setenv("COMMAND_PREFIX", "?")
    env.setenv("LOG_LEVEL", "debug")
    env.setenv("IGNORE_AFK_CHANNEL", "0")
    env.setenv("IGNORED_CHANNEL_IDS", "5, 6,,7")

    s = load_settings()

    assert s.db_path == "/data/vc.db"
    assert s.port == 8080
    assert s.command_prefix == "?"
    assert s.log_level == "DEBUG"
    assert s.ignore_afk_channel is False
    assert s.ignored_channel_ids == (5, 6, 7)


def test_token_fallback(env):
    env.delenv("DISCORD_TOKEN")
    env.setenv("DISCORD_BOT_TOKEN", "fallback")
    assert load_settings().token == "fallback"


def test_missing_token(env):
    env.delenv("DISCORD_TOKEN")
    with pytest.raises(ConfigError, match="Missing bot token"):
        load_settings()


@pytest.mark.parametrize("key", ["GUILD_ID", "VOICE_CHANNEL_ID"])
def test_missing_ids(env, key):
    env.delenv(key)
    with pytest.raises(ConfigError, match=key):
        load_settings()


def test_non_numeric_id(env):
    env.setenv("VOICE_CHANNEL_ID", "general")
    with pytest.raises(ConfigError, match="numeric"):
        load_settings()


def test_bad_port(env):
    env.setenv("PORT", "http")
    with pytest.raises(ConfigError, match="PORT"):
        load_settings()


def test_bad_ignored_ids(env):
    env.setenv("IGNORED_CHANNEL_IDS", "1,afk")
    with pytest.raises(ConfigError, match="IGNORED_CHANNEL_IDS"):
        load_settings()
