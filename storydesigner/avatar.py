"""Profile pictures rendered from an emoji.

Each (emoji, user) pair gets one SVG under the emoji directory, named
`<codepoint-hex>-<first 8 chars of user id>.svg` and served at
`/emoji/<file>`. The gradient hue comes from the emoji's first code point
(golden-angle spread) so the same emoji always looks the same.
"""

from __future__ import annotations

import logging
from html import escape
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)

URL_PREFIX = "/emoji"


class AvatarImage(BaseModel):
    url: str
    path: str
    cached: bool


def avatar_filename(emoji: str, user_id: str) -> str:
    if not emoji:
        raise ValueError("An emoji is required")
    return f"{ord(emoji[0]):x}-{user_id[:8]}.svg"


def render_avatar_svg(emoji: str, size: int = 128) -> str:
    hue1 = (ord(emoji[0]) * 137.5) % 360
    hue2 = (hue1 + 60) % 360
    half = size / 2
    return f"""<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" viewBox="0 0 {size} {size}">
  <defs>
    <radialGradient id="bg" cx="50%" cy="50%" r="50%">
      <stop offset="0%" stop-color="hsl({hue1:.1f}, 75%, 80%)"/>
      <stop offset="60%" stop-color="hsl({hue2:.1f}, 65%, 70%)"/>
      <stop offset="100%" stop-color="hsl({hue1:.1f}, 70%, 55%)"/>
    </radialGradient>
  </defs>
  <circle cx="{half}" cy="{half}" r="{half - 1.5}" fill="url(#bg)" stroke="hsl({hue1:.1f}, 60%, 45%)" stroke-width="3"/>
  <text x="50%" y="50%" dy="0.35em" text-anchor="middle" font-size="{size * 0.5:.0f}"
        font-family="Apple Color Emoji, Segoe UI Emoji, Noto Color Emoji, sans-serif">{escape(emoji)}</text>
</svg>
"""


def get_avatar(emoji: str, user_id: str, directory: Path) -> AvatarImage:
    """Return the avatar for a user's emoji, rendering it on first use.

    Raises OSError if the image cannot be written.
    """
    filename = avatar_filename(emoji, user_id)
    path = directory / filename
    url = f"{URL_PREFIX}/{filename}"
    if path.is_file():
        return AvatarImage(url=url, path=str(path), cached=True)
    directory.mkdir(parents=True, exist_ok=True)
    path.write_text(render_avatar_svg(emoji), encoding="utf-8")
    logger.debug("rendered avatar %s", path)
    return AvatarImage(url=url, path=str(path), cached=False)
