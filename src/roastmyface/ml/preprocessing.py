"""Image preprocessing: decoding uploads and preparing detector input."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from roastmyface.errors import UnreadableImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

_DETECTION_MEAN: float = 127.0
_DETECTION_STD: float = 128.0


class ImagePreprocessor:
    """Decodes raw upload bytes and builds model input tensors."""

    def __init__(self, max_file_size: int, max_image_pixels: int) -> None:
        self._max_file_size = max_file_size
        self._max_image_pixels = max_image_pixels

    def decode_image(self, image_bytes: bytes) -> NDArray[np.uint8]:
        """Decode raw image bytes into an RGB uint8 numpy array.

        The decoded Pillow handle is closed before returning, on success and on
        failure alike.

        Args:
            image_bytes: Raw file bytes (any format Pillow can open).

        Returns:
            HxWx3 RGB uint8 numpy array with EXIF orientation applied.

        Raises:
            UnreadableImageError: If the bytes cannot be decoded or exceed size limits.
        """
        if not image_bytes:
            raise UnreadableImageError("The file is empty.")
        if len(image_bytes) > self._max_file_size:
            raise UnreadableImageError("The file is too large.")

        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                if img.width * img.height > self._max_image_pixels:
                    raise UnreadableImageError("The image has too many pixels.")
                with ImageOps.exif_transpose(img) as oriented, oriented.convert("RGB") as rgb:
                    return np.array(rgb, dtype=np.uint8)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise UnreadableImageError() from exc

    @staticmethod
    def preprocess_for_detection(image: NDArray[np.uint8], input_size: tuple[int, int]) -> NDArray[np.float32]:
        """Resize and normalize an RGB image for the UltraFace detector.

        Args:
            image: HxWx3 RGB uint8 array.
            input_size: Model input as (width, height).

        Returns:
            Float32 tensor of shape (1, 3, height, width).
        """
        if image.ndim != 3 or image.shape[2] != 3:
            raise ValueError(f"Expected an HxWx3 image, got shape {image.shape}")

        with Image.fromarray(image) as src, src.resize(input_size, Image.Resampling.BILINEAR) as resized:
            pixels = np.asarray(resized, dtype=np.float32)
        tensor = (pixels - _DETECTION_MEAN) / _DETECTION_STD
        return np.ascontiguousarray(tensor.transpose(2, 0, 1)[np.newaxis, ...])
