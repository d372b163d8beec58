"""Per-user selection state: chosen pack and prompt, validated images, results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from roastmyface.client import ImageRoast
    from roastmyface.packs import Pack, PromptItem
    from roastmyface.validator import UploadedImage

logger = logging.getLogger(__name__)

RoastResult: TypeAlias = "list[str] | list[ImageRoast]"


@dataclass
class SessionState:
    """Mutable state owned by one session and passed explicitly to the operations that change it.

    Only ``select_pack``, ``reroll_prompt``, ``set_images`` and
    ``RoastOrchestrator.generate`` write to it.
    """

    pack: Pack | None = None
    prompt: PromptItem | None = None
    images: list[UploadedImage] = field(default_factory=list)
    results: RoastResult | None = None
    error: str | None = None
    generating: bool = False

    @property
    def multi_image(self) -> bool:
        """True when a pack prompt drives the flow rather than a single-image style roast."""
        return self.prompt is not None

    @property
    def required_images(self) -> int:
        if self.prompt is None:
            return 1
        return self.prompt.required_image_count

    @property
    def upload_enabled(self) -> bool:
        """A selected pack without any question cannot take uploads."""
        return self.pack is None or self.prompt is not None

    @property
    def can_generate(self) -> bool:
        return not self.generating and len(self.images) >= max(self.required_images, 1)


def set_images(state: SessionState, images: list[UploadedImage]) -> None:
    """Replace the validated image set; previous results no longer apply.

    Without a pack prompt only one image is roasted, so only the first is kept.
    """
    if not state.multi_image and len(images) > 1:
        logger.info("Single-image roast keeps %s, dropping %d other image(s)", images[0].filename, len(images) - 1)
        images = images[:1]
    state.images = list(images)
    state.results = None
    state.error = None
    logger.info("Session now holds %d image(s)", len(state.images))
