"""Abstract visual composition of a roast card.

A composition is a tree of ``Element`` nodes with absolute-within-parent
geometry and a small set of style properties. The rasterizer draws it; the
sanitizer rewrites its colors.
"""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from roastmyface.client import ImageRoast

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from roastmyface.session import RoastResult
    from roastmyface.validator import UploadedImage

# Tailwind v4 palette entries are declared in oklch(); kept as-is so the card
# carries the same colors the web shell shows.
CARD_THEME: dict[str, str] = {
    "card": "oklch(1 0 0)",
    "tile": "#ffffff",
    "text": "oklch(0.21 0.034 264.665)",
    "muted": "oklch(0.446 0.03 256.802)",
    "accent": "oklch(0.577 0.245 27.325)",
}

TILE_WIDTH = 250
TILE_IMAGE_HEIGHT = 280
GAP = 16
PADDING = 24
FONT_SIZE = 14
LINE_HEIGHT_RATIO = 1.4
BRAND_NAME = "RoastMyFace"
BRAND_HANDLE = "@roastmyface"


class ElementKind(StrEnum):
    BOX = "box"
    IMAGE = "image"
    TEXT = "text"


@dataclass(frozen=True)
class Box:
    x: int
    y: int
    width: int
    height: int


@dataclass(eq=False)
class Element:
    kind: ElementKind
    box: Box
    style: dict[str, str] = field(default_factory=dict)
    text: str | None = None
    image: bytes | None = field(default=None, repr=False)
    font_size: int = FONT_SIZE
    child_nodes: list[Element] = field(default_factory=list)

    def children(self) -> list[Element]:
        return self.child_nodes

    def append(self, child: Element) -> Element:
        self.child_nodes.append(child)
        return child

    def walk(self) -> Iterator[Element]:
        """Depth-first, parent before children."""
        yield self
        for child in self.child_nodes:
            yield from child.walk()

    @property
    def renderable(self) -> bool:
        """True when this element or any descendant draws text or an image."""
        if self.kind is ElementKind.TEXT and self.text:
            return True
        if self.kind is ElementKind.IMAGE and self.image:
            return True
        return any(child.renderable for child in self.child_nodes)


def wrap_text(text: str, width: int, font_size: int = FONT_SIZE) -> list[str]:
    """Wrap text to a pixel width using an average glyph width estimate."""
    chars_per_line = max(int(width / (font_size * 0.55)), 1)
    return textwrap.wrap(text, chars_per_line) or [""]


def text_height(lines: int, font_size: int = FONT_SIZE) -> int:
    return int(lines * font_size * LINE_HEIGHT_RATIO)


def _text_block(text: str, x: int, y: int, width: int, color: str, font_size: int = FONT_SIZE) -> Element:
    height = text_height(len(wrap_text(text, width, font_size)), font_size)
    return Element(ElementKind.TEXT, Box(x, y, width, height), {"color": color}, text=text, font_size=font_size)


def _columns(image_count: int) -> int:
    if image_count <= 1:
        return 1
    if image_count in (2, 4):
        return 2
    return 3


def build_roast_card(
    images: Sequence[UploadedImage],
    results: RoastResult | None,
    *,
    prompt: str | None = None,
    theme: dict[str, str] | None = None,
) -> Element:
    """Lay out the uploaded images with their roasts into a shareable card.

    Per-image roasts sit under the tile they target; flat roasts are listed
    under the grid next to the brand row. Without images the card is left
    empty, whatever the prompt or results.
    """
    colors = {**CARD_THEME, **(theme or {})}
    columns = _columns(len(images))
    inner_width = columns * TILE_WIDTH + (columns - 1) * GAP
    y = PADDING

    card = Element(ElementKind.BOX, Box(0, 0, inner_width + 2 * PADDING, 0), {"background-color": colors["card"]})
    if not images:
        # Nothing to roast yet: an empty card, which export refuses.
        card.box = Box(0, 0, card.box.width, 2 * PADDING)
        return card

    if prompt:
        heading = card.append(_text_block(prompt, PADDING, y, inner_width, colors["text"], FONT_SIZE + 4))
        y += heading.box.height + GAP

    per_image: dict[int, list[str]] = {}
    flat: list[str] = []
    for entry in results or []:
        if isinstance(entry, ImageRoast):
            per_image.setdefault(entry.image_index, []).append(entry.roast)
        else:
            flat.append(entry)

    row_top = y
    row_height = 0
    for index, image in enumerate(images):
        column = index % columns
        if column == 0 and index > 0:
            row_top += row_height + GAP
            row_height = 0

        tile_height = TILE_IMAGE_HEIGHT
        captions = [
            _text_block(roast, 8, 0, TILE_WIDTH - 16, colors["text"]) for roast in per_image.get(index, [])
        ]
        caption_y = TILE_IMAGE_HEIGHT + 8
        for caption in captions:
            caption.box = Box(caption.box.x, caption_y, caption.box.width, caption.box.height)
            caption_y += caption.box.height + 8
        if captions:
            tile_height = caption_y

        tile = card.append(
            Element(
                ElementKind.BOX,
                Box(PADDING + column * (TILE_WIDTH + GAP), row_top, TILE_WIDTH, tile_height),
                {"background-color": colors["tile"]},
            )
        )
        tile.append(Element(ElementKind.IMAGE, Box(0, 0, TILE_WIDTH, TILE_IMAGE_HEIGHT), image=image.data))
        for caption in captions:
            tile.append(caption)
        row_height = max(row_height, tile_height)

    y = row_top + row_height + GAP

    if results:
        name = card.append(_text_block(BRAND_NAME, PADDING, y, inner_width, colors["text"], FONT_SIZE - 2))
        y += name.box.height
        handle = card.append(_text_block(BRAND_HANDLE, PADDING, y, inner_width, colors["muted"], FONT_SIZE - 2))
        y += handle.box.height + GAP

    for roast in flat:
        block = card.append(_text_block(roast, PADDING, y, inner_width, colors["text"]))
        y += block.box.height + GAP

    card.box = Box(0, 0, card.box.width, y + PADDING - GAP)
    return card
