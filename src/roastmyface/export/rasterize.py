"""Rasterize a composition into a PNG artifact with Pillow."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field

from PIL import Image, ImageColor, ImageDraw, ImageFont, ImageOps

from roastmyface.errors import EmptyCompositionError
from roastmyface.export.composition import LINE_HEIGHT_RATIO, Element, ElementKind, wrap_text
from roastmyface.export.sanitize import sanitize_colors

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 2
DEFAULT_FILENAME = "roastmyface.png"
_BACKDROP = (255, 255, 255)


@dataclass(frozen=True)
class ExportArtifact:
    data: bytes = field(repr=False)
    content_type: str = "image/png"
    filename: str = DEFAULT_FILENAME


def _paint(value: str | None) -> tuple[int, int, int] | None:
    """Resolve a style color to an opaque RGB fill, or None when it paints nothing."""
    if value is None or value.strip().lower() in ("", "transparent", "none"):
        return None
    rgba = ImageColor.getrgb(value)
    if len(rgba) == 4 and rgba[3] == 0:
        return None
    return rgba[0], rgba[1], rgba[2]


def _draw_element(canvas: Image.Image, element: Element, origin: tuple[int, int], scale: int) -> None:
    left = origin[0] + element.box.x * scale
    top = origin[1] + element.box.y * scale
    width = element.box.width * scale
    height = element.box.height * scale
    draw = ImageDraw.Draw(canvas)

    background = _paint(element.style.get("background-color"))
    if background is not None and width > 0 and height > 0:
        draw.rectangle((left, top, left + width - 1, top + height - 1), fill=background)

    if element.kind is ElementKind.IMAGE and element.image and width > 0 and height > 0:
        with Image.open(io.BytesIO(element.image)) as source, ImageOps.exif_transpose(source) as oriented:
            fitted = ImageOps.fit(oriented.convert("RGB"), (width, height), Image.Resampling.LANCZOS)
        canvas.paste(fitted, (left, top))

    if element.kind is ElementKind.TEXT and element.text:
        color = _paint(element.style.get("color")) or (0, 0, 0)
        font = ImageFont.load_default(size=element.font_size * scale)
        line_height = int(element.font_size * LINE_HEIGHT_RATIO * scale)
        for number, line in enumerate(wrap_text(element.text, element.box.width, element.font_size)):
            draw.text((left, top + number * line_height), line, fill=color, font=font)

    for child in element.children():
        _draw_element(canvas, child, (left, top), scale)


def rasterize(root: Element, scale: int = DEFAULT_SCALE) -> Image.Image:
    """Draw the composition at ``scale`` onto an opaque white RGB canvas.

    Colors must already be representable; see ``sanitize_colors``.
    """
    size = (max(root.box.width * scale, 1), max(root.box.height * scale, 1))
    canvas = Image.new("RGB", size, _BACKDROP)
    _draw_element(canvas, root, (-root.box.x * scale, -root.box.y * scale), scale)
    return canvas


def export_composition(
    root: Element, *, scale: int = DEFAULT_SCALE, filename: str = DEFAULT_FILENAME
) -> ExportArtifact:
    """Sanitize colors, rasterize and PNG-encode a composition.

    Raises:
        EmptyCompositionError: The composition has no text or image to draw.
    """
    if not root.renderable:
        raise EmptyCompositionError()

    sanitize_colors(root)
    with rasterize(root, scale) as canvas:
        buffer = io.BytesIO()
        canvas.save(buffer, format="PNG")
    logger.info("Exported %dx%d card as %s", root.box.width * scale, root.box.height * scale, filename)
    return ExportArtifact(data=buffer.getvalue(), filename=filename)
