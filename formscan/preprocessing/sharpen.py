"""3x3 sharpening convolution for document images."""

import cv2
import numpy as np

from formscan.utils.logger import get_logger

from .bitmap import Bitmap

logger = get_logger(__name__)

SHARPEN_KERNEL = np.array(
    [
        [0, -1, 0],
        [-1, 5, -1],
        [0, -1, 0],
    ],
    dtype=np.float32,
)


def sharpen(bitmap: Bitmap) -> Bitmap:
    """Sharpen R, G and B with a fixed 3x3 kernel.

    The convolution reads from an untouched copy of the input, so no
    output pixel sees an already sharpened neighbour. Only pixels with a
    full 3x3 neighbourhood are written; the outer ring of rows and
    columns and the alpha plane keep their input values. Results are
    clamped to [0, 255].

    Args:
        bitmap: Source bitmap.

    Returns:
        Sharpened bitmap.
    """
    pixels = bitmap.pixels.copy()
    if bitmap.width < 3 or bitmap.height < 3:
        return Bitmap(pixels)

    source = bitmap.rgb.astype(np.float32)
    filtered = cv2.filter2D(source, cv2.CV_32F, SHARPEN_KERNEL)
    interior = np.clip(np.rint(filtered[1:-1, 1:-1]), 0, 255).astype(np.uint8)
    pixels[1:-1, 1:-1, :3] = interior

    logger.debug("Sharpened %dx%d image", bitmap.width, bitmap.height)
    return Bitmap(pixels)
