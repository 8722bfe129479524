import io
from types import SimpleNamespace

import pytest
from aiohttp import test_utils
from PIL import Image

from vcpin.cogs.admin import parse_duration_ms
from vcpin.core.voice_state import SupervisorPhase
from vcpin.ui.formatting import clamp_limit, fmt_duration
from vcpin.ui.leaderboard_card import LeaderboardRow, render_leaderboard
from vcpin.web.health import build_app

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _png(colour=(255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (128, 128), colour).save(buf, format="PNG")
    return buf.getvalue()


class TestFormatting:
    @pytest.mark.parametrize(
        "ms, text",
        [
            (0, "0s"),
            (-5_000, "0s"),
            (42_000, "42s"),
            (90_000, "1m 30s"),
            (3_600_000, "1h 0m"),
            (45_296_000, "12h 34m"),
        ],
    )
    def test_fmt_duration(self, ms, text):
        assert fmt_duration(ms) == text

    def test_clamp_limit(self):
        assert clamp_limit(None, default=10, maximum=20) == 10
        assert clamp_limit(0, default=10, maximum=20) == 1
        assert clamp_limit(5, default=10, maximum=20) == 5
        assert clamp_limit(99, default=10, maximum=20) == 20

    @pytest.mark.parametrize(
        "text, ms",
        [("180", 180_000), ("30m", 1_800_000), ("2h", 7_200_000), ("-15m", -900_000)],
    )
    def test_parse_duration(self, text, ms):
        assert parse_duration_ms(text) == ms

    @pytest.mark.parametrize("text", ["", "abc", "5x"])
    def test_parse_duration_rejects_garbage(self, text):
        with pytest.raises(ValueError):
            parse_duration_ms(text)


class TestLeaderboardCard:
    def test_renders_png_sized_to_rows(self):
        rows = [
            LeaderboardRow(rank=1, name="alice", total_ms=500_000, avatar=_png()),
            LeaderboardRow(rank=2, name="bob", total_ms=400_000),
            LeaderboardRow(rank=3, name="x" * 200, total_ms=300_000, avatar=b"not an image"),
        ]

        png = render_leaderboard(rows, title="Test", subtitle="Top 3")

        assert png.startswith(PNG_MAGIC)
        img = Image.open(io.BytesIO(png))
        one_row = Image.open(io.BytesIO(render_leaderboard(rows[:1])))
        assert img.width == one_row.width
        assert img.height > one_row.height

    def test_renders_empty_board(self):
        assert render_leaderboard([]).startswith(PNG_MAGIC)


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_endpoints(self):
        supervisor = SimpleNamespace(phase=SupervisorPhase.READY)
        app = build_app(supervisor, clock=lambda: 1234)

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.get("/")
            assert resp.status == 200
            assert await resp.text() == "OK"

            resp = await client.get("/health")
            assert resp.status == 200
            assert await resp.json() == {"ok": True, "ts": 1234, "voice": "ready"}
