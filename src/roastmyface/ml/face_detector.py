"""Face detection models.

Implementations: UltraFace (RFB-320, slim-320) through ONNX Runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from roastmyface.ml.model_manager import lookup_model
from roastmyface.ml.preprocessing import ImagePreprocessor

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from roastmyface.ml.model_manager import OnnxModelManager


@dataclass(frozen=True)
class RawDetection:
    """Raw face detection result.

    Box corners are relative to the image size (0.0-1.0).
    """

    bbox: NDArray[np.float32]
    score: float


class FaceDetector(Protocol):
    """Protocol for face detection models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def load(self) -> None:
        """Load model assets. Blocking; called once before any detection."""
        ...

    def detect(self, image: NDArray[np.uint8]) -> list[RawDetection]:
        """Detect faces in an image.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            List of detections with bounding boxes and scores.
        """
        ...


def _iou(box: NDArray[np.float32], others: NDArray[np.float32]) -> NDArray[np.float32]:
    top_left = np.maximum(box[:2], others[:, :2])
    bottom_right = np.minimum(box[2:], others[:, 2:])
    overlap = np.clip(bottom_right - top_left, 0.0, None).prod(axis=1)
    area = (box[2:] - box[:2]).prod()
    other_areas = (others[:, 2:] - others[:, :2]).prod(axis=1)
    return overlap / (area + other_areas - overlap + 1e-6)


def non_max_suppression(
    boxes: NDArray[np.float32], scores: NDArray[np.float32], iou_threshold: float
) -> list[int]:
    """Greedy NMS returning the indices of the boxes to keep, best first."""
    order = np.argsort(scores)[::-1]
    keep: list[int] = []
    while order.size > 0:
        best = int(order[0])
        keep.append(best)
        if order.size == 1:
            break
        rest = order[1:]
        order = rest[_iou(boxes[best], boxes[rest]) <= iou_threshold]
    return keep


class UltraFaceDetector:
    """UltraFace ONNX detector.

    The model emits ``scores`` (1, N, 2) with background/face probabilities and
    ``boxes`` (1, N, 4) with relative corner coordinates.
    """

    def __init__(
        self,
        model_manager: OnnxModelManager,
        model_name: str,
        score_threshold: float,
        iou_threshold: float,
    ) -> None:
        self._model_manager = model_manager
        self._spec = lookup_model(model_name)
        self._score_threshold = score_threshold
        self._iou_threshold = iou_threshold

    @property
    def model_name(self) -> str:
        return self._spec.name

    def load(self) -> None:
        self._model_manager.get_session(self._spec.name)

    def detect(self, image: NDArray[np.uint8]) -> list[RawDetection]:
        session = self._model_manager.get_session(self._spec.name)
        tensor = ImagePreprocessor.preprocess_for_detection(image, self._spec.input_size)
        input_name = session.get_inputs()[0].name
        scores, boxes = session.run(None, {input_name: tensor})[:2]

        face_scores = np.asarray(scores, dtype=np.float32)[0, :, 1]
        all_boxes = np.asarray(boxes, dtype=np.float32)[0]
        mask = face_scores > self._score_threshold
        if not mask.any():
            return []

        candidates = all_boxes[mask]
        candidate_scores = face_scores[mask]
        keep = non_max_suppression(candidates, candidate_scores, self._iou_threshold)
        return [RawDetection(bbox=np.clip(candidates[i], 0.0, 1.0), score=float(candidate_scores[i])) for i in keep]
