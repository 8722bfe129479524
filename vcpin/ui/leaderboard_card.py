# vcpin/ui/leaderboard_card.py
from __future__ import annotations

from dataclasses import dataclass
import io

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from vcpin.ui.formatting import fmt_duration

WIDTH = 720
HEADER_H = 84
ROW_H = 64
PADDING = 24
AVATAR = 44

BACKGROUND = (30, 31, 34)
ROW_EVEN = (43, 45, 49)
ROW_ODD = (37, 38, 42)
TEXT = (235, 235, 235)
MUTED = (160, 163, 170)
MEDALS = {1: (255, 196, 54), 2: (200, 205, 212), 3: (205, 127, 50)}


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    name: str
    total_ms: int
    avatar: bytes | None = None


def _font(size: int):
    # Pillow >= 10.1 scales the bundled default font
    return ImageFont.load_default(size=size)


def _avatar_image(data: bytes | None, fallback_seed: str) -> Image.Image:
    """
    Circle-cropped avatar. Unreadable or missing bytes get a flat
    placeholder coloured from the name.
    """
    img = None
    if data:
        try:
            img = Image.open(io.BytesIO(data)).convert("RGBA").resize((AVATAR, AVATAR))
        except (UnidentifiedImageError, OSError, ValueError):
            img = None

    if img is None:
        h = sum(fallback_seed.encode("utf-8")) or 1
        colour = (80 + h * 37 % 150, 80 + h * 53 % 150, 80 + h * 71 % 150, 255)
        img = Image.new("RGBA", (AVATAR, AVATAR), colour)

    mask = Image.new("L", (AVATAR, AVATAR), 0)
    ImageDraw.Draw(mask).ellipse((0, 0, AVATAR - 1, AVATAR - 1), fill=255)
    img.putalpha(mask)
    return img


def _fit(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> str:
    if draw.textlength(text, font=font) <= max_width:
        return text
    while text and draw.textlength(text + "…", font=font) > max_width:
        text = text[:-1]
    return text + "…"


def render_leaderboard(rows: list[LeaderboardRow], *, title: str = "Voice Leaderboard", subtitle: str = "") -> bytes:
    """
    Pure renderer: rows in, PNG bytes out. No discord imports here.
    Blocking (Pillow), so callers run it off the event loop.
    """
    height = HEADER_H + max(1, len(rows)) * ROW_H + PADDING
    img = Image.new("RGB", (WIDTH, height), color=BACKGROUND)
    draw = ImageDraw.Draw(img)

    title_font = _font(30)
    sub_font = _font(16)
    name_font = _font(22)
    rank_font = _font(24)

    draw.text((PADDING, 18), title, fill=TEXT, font=title_font)
    if subtitle:
        draw.text((PADDING, 56), subtitle, fill=MUTED, font=sub_font)

    if not rows:
        draw.text((PADDING, HEADER_H + 18), "No voice time recorded yet.", fill=MUTED, font=name_font)

    for i, row in enumerate(rows):
        top = HEADER_H + i * ROW_H
        draw.rectangle([PADDING // 2, top + 4, WIDTH - PADDING // 2, top + ROW_H - 4], fill=ROW_EVEN if i % 2 == 0 else ROW_ODD)

        mid = top + ROW_H // 2
        draw.text((PADDING, mid), f"#{row.rank}", fill=MEDALS.get(row.rank, MUTED), font=rank_font, anchor="lm")

        avatar = _avatar_image(row.avatar, row.name)
        img.paste(avatar, (PADDING + 64, mid - AVATAR // 2), avatar)

        duration = fmt_duration(row.total_ms)
        duration_w = int(draw.textlength(duration, font=name_font))
        name_x = PADDING + 64 + AVATAR + 16
        name = _fit(draw, row.name, name_font, WIDTH - PADDING - duration_w - 24 - name_x)

        draw.text((name_x, mid), name, fill=TEXT, font=name_font, anchor="lm")
        draw.text((WIDTH - PADDING, mid), duration, fill=TEXT, font=name_font, anchor="rm")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
