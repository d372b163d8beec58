"""Detector gateway: one-time asynchronous initialization and per-image face counts."""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from roastmyface.errors import DetectionError, DetectorLoadingError, DetectorUnavailableError

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from roastmyface.ml.face_detector import FaceDetector
    from roastmyface.ml.inference import InferencePool

logger = logging.getLogger(__name__)


class DetectorStatus(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class DetectorGateway:
    """Wraps a FaceDetector behind an async, initialize-once interface."""

    def __init__(self, detector: FaceDetector, pool: InferencePool) -> None:
        self._detector = detector
        self._pool = pool
        self._status = DetectorStatus.UNINITIALIZED
        self._init_task: asyncio.Future[DetectorStatus] | None = None

    @property
    def status(self) -> DetectorStatus:
        return self._status

    @property
    def model_name(self) -> str:
        return self._detector.model_name

    async def initialize(self) -> DetectorStatus:
        """Load the detector model once.

        Concurrent and repeated callers share the same initialization. Never
        raises: a failed load leaves the gateway ``UNAVAILABLE``.
        """
        if self._init_task is None:
            self._status = DetectorStatus.LOADING
            self._init_task = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._init_task)

    async def _load(self) -> DetectorStatus:
        logger.info("Loading face detector %s", self._detector.model_name)
        try:
            await self._pool.run(self._detector.load)
        except Exception:
            logger.warning("Face detector %s failed to load", self._detector.model_name, exc_info=True)
            self._status = DetectorStatus.UNAVAILABLE
        else:
            logger.info("Face detector %s ready", self._detector.model_name)
            self._status = DetectorStatus.READY
        return self._status

    async def detect_faces(self, image: NDArray[np.uint8]) -> int:
        """Return the number of faces found in a decoded image.

        Raises:
            DetectorLoadingError: Initialization has not finished yet.
            DetectorUnavailableError: Initialization failed or never started.
            DetectionError: The detector could not process the image.
        """
        if self._status is DetectorStatus.LOADING:
            raise DetectorLoadingError()
        if self._status is not DetectorStatus.READY:
            raise DetectorUnavailableError()

        try:
            detections = await self._pool.run(self._detector.detect, image)
        except Exception as exc:
            raise DetectionError() from exc
        return len(detections)
