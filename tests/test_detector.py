"""Tests for the detector gateway, the UltraFace post-processing and image decoding."""

from __future__ import annotations

import asyncio
import io
import threading
from unittest.mock import MagicMock

import numpy as np
import pytest
from conftest import FakeDetector, make_image_bytes
from PIL import Image

from roastmyface.errors import DetectionError, DetectorLoadingError, DetectorUnavailableError, UnreadableImageError
from roastmyface.ml.detector import DetectorGateway, DetectorStatus
from roastmyface.ml.face_detector import UltraFaceDetector, non_max_suppression
from roastmyface.ml.inference import InferencePool
from roastmyface.ml.preprocessing import ImagePreprocessor

# ---------------------------------------------------------------------------
# DetectorGateway
# ---------------------------------------------------------------------------


class TestDetectorGateway:
    async def test_initialize_is_idempotent(self, pool: InferencePool) -> None:
        detector = FakeDetector()
        gateway = DetectorGateway(detector, pool)

        first, second = await asyncio.gather(gateway.initialize(), gateway.initialize())
        third = await gateway.initialize()

        assert first == second == third == DetectorStatus.READY
        assert detector.load_calls == 1

    async def test_failed_load_marks_unavailable(self, pool: InferencePool) -> None:
        gateway = DetectorGateway(FakeDetector(load_error=OSError("download failed")), pool)

        status = await gateway.initialize()

        assert status is DetectorStatus.UNAVAILABLE
        with pytest.raises(DetectorUnavailableError):
            await gateway.detect_faces(np.zeros((8, 8, 3), dtype=np.uint8))

    async def test_detect_before_initialize_fails_fast(self, pool: InferencePool) -> None:
        gateway = DetectorGateway(FakeDetector(), pool)
        assert gateway.status is DetectorStatus.UNINITIALIZED
        with pytest.raises(DetectorUnavailableError):
            await gateway.detect_faces(np.zeros((8, 8, 3), dtype=np.uint8))

    async def test_detect_while_loading_reports_loading(self, pool: InferencePool) -> None:
        release = threading.Event()
        detector = FakeDetector()
        detector.load = lambda: release.wait(5)  # type: ignore[method-assign]
        gateway = DetectorGateway(detector, pool)

        init = asyncio.create_task(gateway.initialize())
        await asyncio.sleep(0)
        assert gateway.status is DetectorStatus.LOADING
        with pytest.raises(DetectorLoadingError):
            await gateway.detect_faces(np.zeros((8, 8, 3), dtype=np.uint8))

        release.set()
        assert await init is DetectorStatus.READY

    async def test_detect_returns_face_count(self, gateway: DetectorGateway) -> None:
        assert await gateway.detect_faces(np.zeros((10, 64, 3), dtype=np.uint8)) == 1
        assert await gateway.detect_faces(np.zeros((10, 32, 3), dtype=np.uint8)) == 0

    async def test_detector_failure_becomes_detection_error(self, pool: InferencePool) -> None:
        gateway = DetectorGateway(FakeDetector(detect_error=RuntimeError("shape mismatch")), pool)
        await gateway.initialize()
        with pytest.raises(DetectionError):
            await gateway.detect_faces(np.zeros((8, 8, 3), dtype=np.uint8))


class TestInferencePool:
    async def test_calls_beyond_limit_wait_for_a_slot(self) -> None:
        pool = InferencePool(max_concurrent=1)
        release = threading.Event()
        try:
            first = asyncio.create_task(pool.run(release.wait, 5))
            second = asyncio.create_task(pool.run(lambda: "done"))
            await asyncio.sleep(0.05)

            assert pool.active_count == 1
            assert pool.queue_depth == 1

            release.set()
            assert await first is True
            assert await second == "done"
            assert (pool.active_count, pool.queue_depth) == (0, 0)
        finally:
            release.set()
            pool.shutdown()


# ---------------------------------------------------------------------------
# UltraFaceDetector
# ---------------------------------------------------------------------------


def _fake_session(scores: list[list[float]], boxes: list[list[float]]) -> MagicMock:
    session = MagicMock()
    input_meta = MagicMock()
    input_meta.name = "input"
    session.get_inputs.return_value = [input_meta]
    session.run.return_value = [
        np.array([scores], dtype=np.float32),
        np.array([boxes], dtype=np.float32),
    ]
    return session


class TestUltraFaceDetector:
    def test_overlapping_boxes_collapse_to_one_face(self) -> None:
        session = _fake_session(
            scores=[[0.1, 0.9], [0.2, 0.8], [0.9, 0.1]],
            boxes=[[0.1, 0.1, 0.4, 0.4], [0.12, 0.12, 0.41, 0.41], [0.5, 0.5, 0.9, 0.9]],
        )
        manager = MagicMock()
        manager.get_session.return_value = session
        detector = UltraFaceDetector(manager, "ultraface_rfb_320", score_threshold=0.7, iou_threshold=0.3)

        detections = detector.detect(np.zeros((48, 64, 3), dtype=np.uint8))

        assert len(detections) == 1
        assert detections[0].score == pytest.approx(0.9)
        feed = session.run.call_args.args[1]
        assert feed["input"].shape == (1, 3, 240, 320)

    def test_no_scores_above_threshold(self) -> None:
        manager = MagicMock()
        manager.get_session.return_value = _fake_session([[0.9, 0.1]], [[0.1, 0.1, 0.2, 0.2]])
        detector = UltraFaceDetector(manager, "ultraface_rfb_320", score_threshold=0.7, iou_threshold=0.3)

        assert detector.detect(np.zeros((48, 64, 3), dtype=np.uint8)) == []

    def test_load_opens_session(self) -> None:
        manager = MagicMock()
        detector = UltraFaceDetector(manager, "ultraface_slim_320", score_threshold=0.7, iou_threshold=0.3)
        detector.load()
        manager.get_session.assert_called_once_with("ultraface_slim_320")

    def test_unknown_model_raises_keyerror(self) -> None:
        with pytest.raises(KeyError, match="Unknown model"):
            UltraFaceDetector(MagicMock(), "nope", score_threshold=0.7, iou_threshold=0.3)

    def test_nms_keeps_separate_faces(self) -> None:
        boxes = np.array([[0.0, 0.0, 0.2, 0.2], [0.6, 0.6, 0.9, 0.9]], dtype=np.float32)
        scores = np.array([0.8, 0.95], dtype=np.float32)
        assert non_max_suppression(boxes, scores, 0.3) == [1, 0]


# ---------------------------------------------------------------------------
# ImagePreprocessor
# ---------------------------------------------------------------------------


class TestImagePreprocessor:
    def test_decode_png(self, preprocessor: ImagePreprocessor) -> None:
        image = preprocessor.decode_image(make_image_bytes(width=20, height=10))
        assert image.shape == (10, 20, 3)
        assert image.dtype == np.uint8

    def test_decode_jpeg(self, preprocessor: ImagePreprocessor) -> None:
        image = preprocessor.decode_image(make_image_bytes(width=16, height=16, fmt="JPEG"))
        assert image.shape == (16, 16, 3)

    def test_garbage_is_unreadable(self, preprocessor: ImagePreprocessor) -> None:
        with pytest.raises(UnreadableImageError):
            preprocessor.decode_image(b"\x89PNG but not really")

    def test_empty_is_unreadable(self, preprocessor: ImagePreprocessor) -> None:
        with pytest.raises(UnreadableImageError):
            preprocessor.decode_image(b"")

    def test_truncated_image_is_unreadable(self, preprocessor: ImagePreprocessor) -> None:
        noise = np.random.default_rng(7).integers(0, 255, size=(128, 128, 3), dtype=np.uint8)
        buffer = io.BytesIO()
        Image.fromarray(noise).save(buffer, format="JPEG", quality=95)
        data = buffer.getvalue()
        with pytest.raises(UnreadableImageError):
            preprocessor.decode_image(data[: len(data) // 2])

    def test_file_size_limit(self) -> None:
        small = ImagePreprocessor(max_file_size=10, max_image_pixels=10_000)
        with pytest.raises(UnreadableImageError, match="too large"):
            small.decode_image(make_image_bytes())

    def test_pixel_limit(self) -> None:
        tiny = ImagePreprocessor(max_file_size=5_000_000, max_image_pixels=100)
        with pytest.raises(UnreadableImageError, match="too many pixels"):
            tiny.decode_image(make_image_bytes(width=20, height=20))

    def test_preprocess_for_detection_normalizes(self) -> None:
        image = np.full((48, 64, 3), 255, dtype=np.uint8)
        tensor = ImagePreprocessor.preprocess_for_detection(image, (320, 240))
        assert tensor.shape == (1, 3, 240, 320)
        assert tensor.dtype == np.float32
        assert tensor.max() == pytest.approx((255 - 127) / 128)
