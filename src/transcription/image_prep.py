# src/transcription/image_prep.py - v1
"""Image preparation before upload: downscale, grayscale/contrast, JPEG.

Phone cameras produce 12MP+ frames; capping the longest side keeps upload
size and model latency down while leaving enough resolution for
handwriting.
"""

from __future__ import annotations

import io

from PIL import Image, ImageOps

from scribbledoc.core.models import OCRConfig

DEFAULT_MAX_DIMENSION = 1536
DEFAULT_JPEG_QUALITY = 85


def scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Size with the longest side capped at ``max_dimension``, aspect kept."""
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width > height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


# Equal-weight channel mean (r + g + b) / 3, not the ITU-R 601 luma of
# ImageOps.grayscale.
_MEAN_MATRIX = (1 / 3, 1 / 3, 1 / 3, 0.0)


def to_grayscale(image: Image.Image) -> Image.Image:
    """Convert an RGB image to "L" using the plain channel mean."""
    return image.convert("L", _MEAN_MATRIX)


def apply_contrast(image: Image.Image, contrast: float) -> Image.Image:
    """Stretch grey levels around mid-grey: v' = (v - 128) * contrast + 128."""
    return image.point(lambda v: max(0, min(255, round((v - 128) * contrast + 128))))


def prepare_image(
    data: bytes,
    config: OCRConfig,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
) -> bytes:
    """Return JPEG bytes ready for the transcription backend.

    Raises:
        PIL.UnidentifiedImageError: If ``data`` is not a readable image.
    """
    with Image.open(io.BytesIO(data)) as opened:
        image = ImageOps.exif_transpose(opened)
        image = image.convert("RGB") if image.mode != "RGB" else image.copy()

    target = scaled_size(image.width, image.height, max_dimension)
    if target != image.size:
        image = image.resize(target, resample=Image.Resampling.LANCZOS)

    if config.grayscale:
        image = apply_contrast(to_grayscale(image), config.contrast)

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=jpeg_quality)
    return buffer.getvalue()
