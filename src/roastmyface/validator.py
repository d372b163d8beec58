"""Image validation: decode each upload, gate it on face presence, keep input order."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from roastmyface.errors import (
    BatchCancelledError,
    DetectionError,
    DetectorLoadingError,
    DetectorUnavailableError,
    NeedsMoreImagesError,
    RejectionReason,
    UnreadableImageError,
)
from roastmyface.ml.detector import DetectorStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from roastmyface.ml.detector import DetectorGateway
    from roastmyface.ml.preprocessing import ImagePreprocessor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedImage:
    """A user-selected file as received: raw bytes, name and mime type."""

    data: bytes = field(repr=False)
    filename: str
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class ValidationOutcome:
    image: UploadedImage
    reason: RejectionReason | None = None

    @classmethod
    def accept(cls, image: UploadedImage) -> ValidationOutcome:
        return cls(image=image)

    @classmethod
    def reject(cls, image: UploadedImage, reason: RejectionReason) -> ValidationOutcome:
        return cls(image=image, reason=reason)

    @property
    def accepted(self) -> bool:
        return self.reason is None

    @property
    def message(self) -> str | None:
        """User-facing explanation for a rejection, None when accepted."""
        name = self.image.filename
        if self.reason is RejectionReason.NO_FACE_DETECTED:
            return f"No faces detected in one of the images! Skipping: {name}"
        if self.reason is RejectionReason.UNREADABLE_IMAGE:
            return f"Invalid image file: {name}. Please upload a valid image."
        if self.reason is RejectionReason.DETECTOR_UNAVAILABLE:
            return f"Face detection is unavailable, could not check: {name}"
        return None


def accepted_images(outcomes: Sequence[ValidationOutcome]) -> list[UploadedImage]:
    return [outcome.image for outcome in outcomes if outcome.accepted]


class BatchToken:
    """Cancellation flag for one validate_batch call."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise BatchCancelledError()


class ImageValidator:
    """Runs uploads through decoding and face detection.

    Only the most recent batch may complete: starting a new batch cancels the
    token of any batch still in flight, and that batch raises
    ``BatchCancelledError`` instead of returning outcomes.
    """

    def __init__(self, gateway: DetectorGateway, preprocessor: ImagePreprocessor) -> None:
        self._gateway = gateway
        self._preprocessor = preprocessor
        self._current: BatchToken | None = None

    def cancel_pending(self) -> None:
        """Cancel the batch in flight, if any; it raises ``BatchCancelledError`` instead of returning."""
        if self._current is not None:
            self._current.cancel()
            self._current = None

    async def validate_batch(
        self,
        files: Sequence[UploadedImage],
        *,
        require_multiple: bool = False,
    ) -> list[ValidationOutcome]:
        """Validate files concurrently and return one outcome per file in input order.

        Args:
            files: Uploaded files in selection order.
            require_multiple: Multi-image flow; a batch with exactly one
                accepted image is rejected as a whole.

        Raises:
            DetectorLoadingError: The detector is still initializing.
            BatchCancelledError: A newer batch superseded this one.
            NeedsMoreImagesError: ``require_multiple`` and exactly one image was accepted.
        """
        if self._gateway.status is DetectorStatus.LOADING:
            raise DetectorLoadingError()

        self.cancel_pending()
        token = BatchToken()
        self._current = token

        async def _indexed(index: int, file: UploadedImage) -> tuple[int, ValidationOutcome]:
            return index, await self._validate_one(file, token)

        try:
            pairs = await asyncio.gather(*(_indexed(i, f) for i, f in enumerate(files)))
            token.raise_if_cancelled()
        finally:
            if self._current is token:
                self._current = None

        by_index = dict(pairs)
        outcomes = [by_index[i] for i in range(len(files))]

        for outcome in outcomes:
            if not outcome.accepted:
                logger.warning("Rejected %s: %s", outcome.image.filename, outcome.reason)
        accepted_count = sum(1 for outcome in outcomes if outcome.accepted)
        logger.info("Validated %d file(s), %d accepted", len(outcomes), accepted_count)

        if require_multiple and accepted_count == 1:
            raise NeedsMoreImagesError(outcomes)
        return outcomes

    async def _validate_one(self, file: UploadedImage, token: BatchToken) -> ValidationOutcome:
        token.raise_if_cancelled()
        try:
            image = await asyncio.to_thread(self._preprocessor.decode_image, file.data)
        except UnreadableImageError:
            return ValidationOutcome.reject(file, RejectionReason.UNREADABLE_IMAGE)

        token.raise_if_cancelled()
        try:
            face_count = await self._gateway.detect_faces(image)
        except (DetectorUnavailableError, DetectorLoadingError):
            return ValidationOutcome.reject(file, RejectionReason.DETECTOR_UNAVAILABLE)
        except DetectionError:
            return ValidationOutcome.reject(file, RejectionReason.UNREADABLE_IMAGE)

        if face_count == 0:
            return ValidationOutcome.reject(file, RejectionReason.NO_FACE_DETECTED)
        return ValidationOutcome.accept(file)
