"""Color sanitization ahead of rasterization.

The rasterizer resolves colors through ``PIL.ImageColor``, which understands
hex, rgb()/rgba(), hsl()/hsv() and named colors but not the CSS Color 4
spaces (oklch(), oklab(), lab(), lch(), color(), color-mix()). Any such value
is replaced with a fixed opaque fallback.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PIL import ImageColor

if TYPE_CHECKING:
    from roastmyface.export.composition import Element

logger = logging.getLogger(__name__)

SAFE_BACKGROUND = "#ffffff"
SAFE_FOREGROUND = "#000000"

COLOR_FALLBACKS: dict[str, str] = {
    "background-color": SAFE_BACKGROUND,
    "color": SAFE_FOREGROUND,
}

_NO_PAINT = frozenset({"", "transparent", "none"})


def is_representable(value: str) -> bool:
    """Return True if the rasterizer can paint ``value`` (or it paints nothing)."""
    value = value.strip().lower()
    if value in _NO_PAINT:
        return True
    try:
        ImageColor.getrgb(value)
    except ValueError:
        return False
    return True


def sanitize_colors(root: Element) -> int:
    """Walk the composition and overwrite unsupported colors in place.

    Returns:
        Number of style properties that were overridden.
    """
    overrides = 0
    for element in root.walk():
        for prop, fallback in COLOR_FALLBACKS.items():
            value = element.style.get(prop)
            if value is not None and not is_representable(value):
                element.style[prop] = fallback
                overrides += 1
    if overrides:
        logger.info("Replaced %d unsupported color value(s) before export", overrides)
    return overrides
