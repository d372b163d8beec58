"""Shared fixtures: synthetic images and a scriptable face detector."""

from __future__ import annotations

import io
import time
from typing import TYPE_CHECKING

import numpy as np
import pytest
from PIL import Image

from roastmyface.ml.detector import DetectorGateway
from roastmyface.ml.face_detector import RawDetection
from roastmyface.ml.inference import InferencePool
from roastmyface.ml.preprocessing import ImagePreprocessor
from roastmyface.validator import ImageValidator, UploadedImage

if TYPE_CHECKING:
    from collections.abc import Iterator

    from numpy.typing import NDArray

# The fake detector keys its answers on image width.
FACE_WIDTH = 64
NO_FACE_WIDTH = 32


def make_image_bytes(
    width: int = FACE_WIDTH,
    height: int = 48,
    color: tuple[int, int, int] = (200, 120, 90),
    fmt: str = "PNG",
) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_upload(filename: str, width: int = FACE_WIDTH) -> UploadedImage:
    return UploadedImage(data=make_image_bytes(width=width), filename=filename, content_type="image/png")


def garbage_upload(filename: str = "notes.txt") -> UploadedImage:
    return UploadedImage(data=b"definitely not an image", filename=filename, content_type="text/plain")


class FakeDetector:
    """FaceDetector stand-in: face count and latency are chosen per image width."""

    model_name = "fake_detector"

    def __init__(
        self,
        faces_by_width: dict[int, int] | None = None,
        default_faces: int = 1,
        delays: dict[int, float] | None = None,
        load_error: Exception | None = None,
        detect_error: Exception | None = None,
    ) -> None:
        self.faces_by_width = faces_by_width or {NO_FACE_WIDTH: 0}
        self.default_faces = default_faces
        self.delays = delays or {}
        self.load_error = load_error
        self.detect_error = detect_error
        self.load_calls = 0
        self.detected_widths: list[int] = []

    def load(self) -> None:
        self.load_calls += 1
        if self.load_error is not None:
            raise self.load_error

    def detect(self, image: NDArray[np.uint8]) -> list[RawDetection]:
        if self.detect_error is not None:
            raise self.detect_error
        width = int(image.shape[1])
        time.sleep(self.delays.get(width, 0.0))
        self.detected_widths.append(width)
        faces = self.faces_by_width.get(width, self.default_faces)
        return [RawDetection(bbox=np.array([0.1, 0.1, 0.5, 0.5], dtype=np.float32), score=0.9)] * faces


@pytest.fixture()
def pool() -> Iterator[InferencePool]:
    inference_pool = InferencePool(max_concurrent=4)
    yield inference_pool
    inference_pool.shutdown()


@pytest.fixture()
def detector() -> FakeDetector:
    return FakeDetector()


@pytest.fixture()
def preprocessor() -> ImagePreprocessor:
    return ImagePreprocessor(max_file_size=5_000_000, max_image_pixels=10_000_000)


@pytest.fixture()
async def gateway(detector: FakeDetector, pool: InferencePool) -> DetectorGateway:
    ready = DetectorGateway(detector, pool)
    await ready.initialize()
    return ready


@pytest.fixture()
def validator(gateway: DetectorGateway, preprocessor: ImagePreprocessor) -> ImageValidator:
    return ImageValidator(gateway, preprocessor)
