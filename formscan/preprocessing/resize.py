"""Width-capped downscaling of document images."""

import math

import cv2

from formscan.utils.logger import get_logger

from .bitmap import Bitmap

logger = get_logger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_scaled_size(width: int, height: int, max_width: int) -> tuple[int, int]:
    """Compute output dimensions for a width cap, never upscaling.

    Args:
        width: Original width in pixels.
        height: Original height in pixels.
        max_width: Maximum allowed output width.

    Returns:
        Tuple of (new_width, new_height), each at least 1.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Invalid image size {width}x{height}")
    if max_width < 1:
        raise ValueError(f"max_width must be positive, got {max_width}")

    scale = min(1.0, max_width / width)
    return (
        max(1, _round_half_up(width * scale)),
        max(1, _round_half_up(height * scale)),
    )


def resize_to_width(bitmap: Bitmap, max_width: int) -> Bitmap:
    """Downscale a bitmap so its width does not exceed ``max_width``.

    Uses OpenCV area resampling, a box filter that is deterministic for
    identical input. Bitmaps already within the cap are copied unchanged.

    Args:
        bitmap: Source bitmap.
        max_width: Maximum allowed output width.

    Returns:
        New bitmap with the capped dimensions.
    """
    new_w, new_h = compute_scaled_size(bitmap.width, bitmap.height, max_width)
    if (new_w, new_h) == (bitmap.width, bitmap.height):
        return bitmap.copy()

    resized = cv2.resize(bitmap.pixels, (new_w, new_h), interpolation=cv2.INTER_AREA)
    logger.debug(
        "Resized %dx%d -> %dx%d", bitmap.width, bitmap.height, new_w, new_h
    )
    return Bitmap(resized)
