"""Image normalization pipeline for document OCR.

Decodes and resizes the input, then applies grayscale conversion, Otsu
binarization and sharpening according to the run's configuration,
tracking quality metrics before and after.
"""

from dataclasses import dataclass

import cv2
import numpy as np

from formscan.utils.config import NormalizationConfig
from formscan.utils.logger import get_logger

from .binarize import binarize, to_grayscale
from .bitmap import Bitmap, decode_image, encode_png, to_data_url
from .resize import resize_to_width
from .sharpen import sharpen

logger = get_logger(__name__)


@dataclass
class QualityMetrics:
    """Before/after image quality measurements."""

    sharpness_before: float
    sharpness_after: float
    contrast_before: float
    contrast_after: float


@dataclass
class NormalizedImage:
    """Output of one normalization run.

    The PNG payload feeds the recognizer; the preview URL is built from
    the same bytes.
    """

    bitmap: Bitmap
    png_bytes: bytes
    original_size: tuple[int, int]
    threshold: int | None
    metrics: QualityMetrics

    @property
    def preview_data_url(self) -> str:
        return to_data_url(self.png_bytes)


def _luma(bitmap: Bitmap) -> np.ndarray:
    return cv2.cvtColor(bitmap.pixels, cv2.COLOR_RGBA2GRAY)


def calculate_sharpness(bitmap: Bitmap) -> float:
    """Calculate image sharpness as the variance of the Laplacian.

    Args:
        bitmap: Input bitmap.

    Returns:
        Sharpness score (higher means sharper).
    """
    return float(cv2.Laplacian(_luma(bitmap), cv2.CV_64F).var())


def calculate_contrast(bitmap: Bitmap) -> float:
    """Calculate contrast as the standard deviation of luma values."""
    return float(_luma(bitmap).std())


class Normalizer:
    """Configurable document image normalizer.

    Resizing always runs; grayscale, binarization and sharpening run in
    that fixed order when enabled by the configuration.

    Args:
        config: Normalization flags for this run.
    """

    def __init__(self, config: NormalizationConfig | None = None) -> None:
        self.config = config or NormalizationConfig()

    def process(self, bitmap: Bitmap) -> tuple[Bitmap, int | None, QualityMetrics]:
        """Run the transform steps on an already decoded bitmap.

        Args:
            bitmap: Decoded input bitmap.

        Returns:
            Tuple of (normalized_bitmap, otsu_threshold, quality_metrics).
            The threshold is ``None`` when binarization is disabled.
        """
        metrics = QualityMetrics(
            sharpness_before=calculate_sharpness(bitmap),
            contrast_before=calculate_contrast(bitmap),
            sharpness_after=0.0,
            contrast_after=0.0,
        )

        result = resize_to_width(bitmap, self.config.max_width)
        threshold: int | None = None

        if self.config.to_gray:
            result = to_grayscale(result)

        if self.config.binarize:
            result, threshold = binarize(result)

        if self.config.sharpen:
            result = sharpen(result)

        metrics.sharpness_after = calculate_sharpness(result)
        metrics.contrast_after = calculate_contrast(result)

        logger.info(
            "Normalization complete: %dx%d -> %dx%d, sharpness %.1f->%.1f, "
            "contrast %.1f->%.1f",
            bitmap.width,
            bitmap.height,
            result.width,
            result.height,
            metrics.sharpness_before,
            metrics.sharpness_after,
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return result, threshold, metrics

    def normalize(self, data: bytes) -> NormalizedImage:
        """Decode raw image bytes and normalize them for recognition.

        Args:
            data: Encoded input image.

        Returns:
            Normalized bitmap with its PNG payload.

        Raises:
            DecodeError: If the bytes are not a supported raster image.
        """
        source = decode_image(data)
        bitmap, threshold, metrics = self.process(source)
        return NormalizedImage(
            bitmap=bitmap,
            png_bytes=encode_png(bitmap),
            original_size=(source.width, source.height),
            threshold=threshold,
            metrics=metrics,
        )


def normalize(data: bytes, config: NormalizationConfig | None = None) -> NormalizedImage:
    """Normalize raw image bytes with the given configuration."""
    return Normalizer(config).normalize(data)
