"""Upload preprocessing: decode, orient, downscale and re-encode images as JPEG.

Images are shrunk so their longest side fits ``max_dimension`` before upload.
This keeps request bodies small; recognition accuracy is unaffected at that
size. Images already within bounds are re-encoded but never upscaled.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from clarifai_client.api.errors import ValidationError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 320
DEFAULT_JPEG_QUALITY = 90
DEFAULT_MAX_IMAGE_PIXELS = 16_777_216


class ImagePreprocessor:
    """Turns caller-supplied images into JPEG bytes ready for upload."""

    def __init__(
        self,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        max_image_pixels: int = DEFAULT_MAX_IMAGE_PIXELS,
    ) -> None:
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.max_image_pixels = max_image_pixels

    def prepare(self, image: bytes | NDArray[np.uint8]) -> bytes:
        """Return JPEG bytes whose longest side is at most ``max_dimension``.

        Args:
            image: Encoded file bytes (any format Pillow reads) or an HxWx3 RGB uint8 array.

        Raises:
            ValidationError: If the image cannot be decoded or exceeds the pixel limit.
        """
        decoded = self.decode(image)
        scaled = self.downscale(decoded)
        return self.encode_jpeg(scaled)

    def decode(self, image: bytes | NDArray[np.uint8]) -> Image.Image:
        if isinstance(image, np.ndarray):
            return self._from_array(image)
        if not isinstance(image, (bytes, bytearray, memoryview)):
            raise ValidationError(f"Unsupported image payload type: {type(image).__name__}")
        if not image:
            raise ValidationError("Image payload is empty")

        try:
            opened = Image.open(io.BytesIO(bytes(image)))
            self._check_pixels(opened.width, opened.height)
            opened.load()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise ValidationError(f"Cannot decode image: {exc}") from exc

        # Camera JPEGs are often stored sideways with an EXIF rotation flag.
        oriented = ImageOps.exif_transpose(opened)
        return oriented.convert("RGB")

    def downscale(self, image: Image.Image) -> Image.Image:
        if max(image.size) <= self.max_dimension:
            return image
        scaled = image.copy()
        scaled.thumbnail((self.max_dimension, self.max_dimension), Image.Resampling.LANCZOS)
        logger.debug("Downscaled image from %sx%s to %sx%s", *image.size, *scaled.size)
        return scaled

    def encode_jpeg(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.jpeg_quality)
        return buffer.getvalue()

    # -- Internal -----------------------------------------------------------

    def _from_array(self, array: NDArray[np.uint8]) -> Image.Image:
        if array.dtype != np.uint8 or array.ndim != 3 or array.shape[2] != 3:
            raise ValidationError(f"Expected an HxWx3 uint8 array, got shape {array.shape} dtype {array.dtype}")
        height, width = array.shape[:2]
        self._check_pixels(width, height)
        return Image.fromarray(np.ascontiguousarray(array))

    def _check_pixels(self, width: int, height: int) -> None:
        if width == 0 or height == 0:
            raise ValidationError("Image has no pixels")
        if width * height > self.max_image_pixels:
            raise ValidationError(f"Image is {width}x{height}, exceeding the {self.max_image_pixels} pixel limit")
