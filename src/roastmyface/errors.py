"""Error taxonomy for the roast pipeline.

Every error carries a ``message`` suitable for showing to the user as-is.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from roastmyface.validator import ValidationOutcome


class RejectionReason(StrEnum):
    NO_FACE_DETECTED = "no_face_detected"
    UNREADABLE_IMAGE = "unreadable_image"
    DETECTOR_UNAVAILABLE = "detector_unavailable"


class RoastMyFaceError(Exception):
    """Base class for all pipeline errors."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# -- Detection ---------------------------------------------------------------


class DetectorUnavailableError(RoastMyFaceError):
    default_message = "Face detection is unavailable. Please try again later."


class DetectorLoadingError(RoastMyFaceError):
    default_message = "Face detection is still loading. Please try again in a moment."


class DetectionError(RoastMyFaceError):
    default_message = "Face detection failed for this image."


class UnreadableImageError(RoastMyFaceError):
    default_message = "Invalid image file. Please upload a valid image."


# -- Validation --------------------------------------------------------------


class NeedsMoreImagesError(RoastMyFaceError):
    """A multi-image batch produced exactly one face-bearing image."""

    default_message = "Please upload more than one image."

    def __init__(self, outcomes: list[ValidationOutcome], message: str | None = None) -> None:
        super().__init__(message)
        self.outcomes = outcomes


class BatchCancelledError(RoastMyFaceError):
    default_message = "Validation was superseded by a newer upload."


# -- Generation --------------------------------------------------------------


class EmptyInputError(RoastMyFaceError):
    default_message = "Upload an image first."


class InsufficientImagesError(RoastMyFaceError):
    default_message = "Not enough images for this prompt."

    def __init__(self, required: int, provided: int) -> None:
        super().__init__(f"This prompt needs {required} pictures, but only {provided} uploaded.")
        self.required = required
        self.provided = provided


class TransportError(RoastMyFaceError):
    default_message = "Oops! Something went wrong. Try again later."


class InvalidResponseError(RoastMyFaceError):
    default_message = "The roast service returned an unusable response. Try again later."


class GenerationInProgressError(RoastMyFaceError):
    default_message = "A roast is already cooking. Hold on."


class NoPromptSelectedError(RoastMyFaceError):
    default_message = "Pick a pack with at least one question first."


# -- Catalog -----------------------------------------------------------------


class CatalogLoadError(RoastMyFaceError):
    default_message = "Could not load the pack catalog."


# -- Export ------------------------------------------------------------------


class EmptyCompositionError(RoastMyFaceError):
    default_message = "Nothing to export yet."


class ShareError(RoastMyFaceError):
    default_message = "Sharing failed."
