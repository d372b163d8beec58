"""Roast orchestration: request composition, single-flight discipline, result mapping.

Two request shapes share one entry point. Without a pack prompt the first image
is roasted in the chosen style; with a pack prompt all images go out together
with the question text and the pack title, and the reply maps roasts back to
image indices.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from roastmyface.client import RoastStyle
from roastmyface.errors import (
    EmptyInputError,
    GenerationInProgressError,
    InsufficientImagesError,
    InvalidResponseError,
    NoPromptSelectedError,
    TransportError,
)

if TYPE_CHECKING:
    from roastmyface.client import ImageRoast, RoastClient
    from roastmyface.session import RoastResult, SessionState

logger = logging.getLogger(__name__)


def check_image_indices(roasts: list[ImageRoast], image_count: int) -> None:
    """Reject per-image roasts that point outside the submitted image set."""
    for roast in roasts:
        if roast.image_index >= image_count:
            raise InvalidResponseError(
                f"The roast service referred to picture {roast.image_index + 1}, but only {image_count} were sent."
            )


class RoastOrchestrator:
    """Issues at most one generation request at a time.

    A call made while another is pending is rejected with
    ``GenerationInProgressError``; it is never queued.
    """

    def __init__(self, client: RoastClient) -> None:
        self._client = client
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def generate(self, state: SessionState, style: RoastStyle = RoastStyle.DEFAULT) -> RoastResult:
        """Roast the session's images and commit the results to ``state``.

        On failure the previous results stay in place and ``state.error``
        carries the message to show.

        Raises:
            GenerationInProgressError: Another generation is pending.
            EmptyInputError: No images in the session.
            NoPromptSelectedError: The selected pack has no question to ask.
            InsufficientImagesError: Fewer images than the prompt requires.
            TransportError: The service could not be reached or answered non-2xx.
            InvalidResponseError: The reply was malformed or empty.
        """
        if self._in_flight or state.generating:
            raise GenerationInProgressError()

        images = list(state.images)
        if not images:
            raise EmptyInputError()
        if state.pack is not None and state.prompt is None:
            raise NoPromptSelectedError()
        if len(images) < state.required_images:
            raise InsufficientImagesError(state.required_images, len(images))

        pack, prompt = state.pack, state.prompt
        self._in_flight = True
        state.generating = True
        try:
            results: RoastResult
            if prompt is not None and pack is not None:
                logger.info("Requesting pack roast for %d image(s): %r", len(images), prompt.text)
                per_image = await self._client.roast_multi(images, prompt.text, pack.title, style)
                check_image_indices(per_image, len(images))
                results = per_image
            else:
                logger.info("Requesting %s roast for %s", style, images[0].filename)
                results = await self._client.roast_single(images[0], style)
        except (TransportError, InvalidResponseError) as exc:
            state.error = exc.message
            raise
        finally:
            self._in_flight = False
            state.generating = False

        if state.pack is not pack or state.prompt is not prompt or state.images != images:
            logger.warning("Session changed while the roast was pending, discarding %d result(s)", len(results))
            return results

        state.results = results
        state.error = None
        logger.info("Received %d roast(s)", len(results))
        return results
