"""Grayscale conversion and Otsu binarization for document images.

Luminance uses the BT.709 weights. Binarization thresholds a single
intensity channel, the red one, which equals the luminance once the
image has been converted to grayscale.
"""

import numpy as np

from formscan.utils.logger import get_logger

from .bitmap import Bitmap

logger = get_logger(__name__)

BT709_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)
DEFAULT_THRESHOLD = 127


def to_grayscale(bitmap: Bitmap) -> Bitmap:
    """Replace R, G and B with BT.709 luminance, keeping alpha.

    Luminance is rounded to the nearest integer with ties to even.

    Args:
        bitmap: Source bitmap.

    Returns:
        Grayscale bitmap.
    """
    luma = bitmap.rgb.astype(np.float64) @ BT709_WEIGHTS
    gray = np.clip(np.rint(luma), 0, 255).astype(np.uint8)
    result = Bitmap.from_rgb(np.repeat(gray[:, :, None], 3, axis=2), bitmap.alpha)
    logger.debug("Converted %dx%d image to grayscale", bitmap.width, bitmap.height)
    return result


def intensity_histogram(channel: np.ndarray) -> np.ndarray:
    """Count pixel intensities into 256 buckets."""
    return np.bincount(channel.ravel(), minlength=256).astype(np.int64)


def otsu_threshold(hist: np.ndarray) -> int:
    """Select the threshold maximizing between-class variance.

    Scans thresholds in ascending order, skipping those with an empty
    background class and stopping once the foreground class is empty.
    Only a strictly larger variance replaces the current best, so ties
    resolve to the lowest threshold.

    Args:
        hist: 256 intensity counts.

    Returns:
        Threshold in [0, 255], or 127 when no threshold separates the
        histogram (for example, a single-valued image).
    """
    if len(hist) != 256:
        raise ValueError(f"Histogram must have 256 buckets, got {len(hist)}")

    counts = [int(c) for c in hist]
    total = sum(counts)
    weighted_sum = float(sum(t * c for t, c in enumerate(counts)))

    sum_b = 0.0
    w_b = 0
    best_variance = 0.0
    threshold = DEFAULT_THRESHOLD

    for t, count in enumerate(counts):
        w_b += count
        if w_b == 0:
            continue
        w_f = total - w_b
        if w_f == 0:
            break

        sum_b += t * count
        mean_b = sum_b / w_b
        mean_f = (weighted_sum - sum_b) / w_f
        between = w_b * w_f * (mean_b - mean_f) ** 2

        if between > best_variance:
            best_variance = between
            threshold = t

    return threshold


def binarize(bitmap: Bitmap) -> tuple[Bitmap, int]:
    """Binarize a bitmap with Otsu's threshold on the red channel.

    Pixels above the threshold become 255 on R, G and B, all others 0.
    Alpha is preserved.

    Args:
        bitmap: Source bitmap, normally already grayscale.

    Returns:
        Tuple of (binary_bitmap, threshold).
    """
    intensity = bitmap.pixels[:, :, 0]
    threshold = otsu_threshold(intensity_histogram(intensity))

    binary = np.where(intensity > threshold, 255, 0).astype(np.uint8)
    result = Bitmap.from_rgb(np.repeat(binary[:, :, None], 3, axis=2), bitmap.alpha)
    logger.debug("Applied Otsu binarization (threshold=%d)", threshold)
    return result, threshold
