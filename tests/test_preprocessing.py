"""Tests for the image normalization pipeline."""

import io

import numpy as np
import pytest
from PIL import Image

from formscan.preprocessing.binarize import (
    DEFAULT_THRESHOLD,
    binarize,
    intensity_histogram,
    otsu_threshold,
    to_grayscale,
)
from formscan.preprocessing.bitmap import Bitmap, decode_image, encode_png, to_data_url
from formscan.preprocessing.pipeline import (
    NormalizedImage,
    Normalizer,
    QualityMetrics,
    calculate_contrast,
    calculate_sharpness,
    normalize,
)
from formscan.preprocessing.resize import compute_scaled_size, resize_to_width
from formscan.preprocessing.sharpen import sharpen
from formscan.utils.config import NormalizationConfig
from formscan.utils.exceptions import DecodeError


def _encode_image(array: np.ndarray, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.fromarray(array).save(buf, format=fmt)
    return buf.getvalue()


def _bitmap(rgb: np.ndarray, alpha: int = 255) -> Bitmap:
    return Bitmap.from_rgb(rgb.astype(np.uint8), np.full(rgb.shape[:2], alpha, np.uint8))


def _random_bitmap(height: int = 10, width: int = 12, seed: int = 7) -> Bitmap:
    rng = np.random.default_rng(seed)
    return Bitmap(rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8))


class TestBitmap:
    """Tests for the Bitmap container and codecs."""

    def test_dimensions(self) -> None:
        bitmap = Bitmap(np.zeros((3, 5, 4), dtype=np.uint8))
        assert bitmap.width == 5
        assert bitmap.height == 3
        assert bitmap.pixels.size == bitmap.width * bitmap.height * 4

    def test_rejects_wrong_channel_count(self) -> None:
        with pytest.raises(ValueError):
            Bitmap(np.zeros((3, 5, 3), dtype=np.uint8))

    def test_rejects_wrong_dtype(self) -> None:
        with pytest.raises(ValueError):
            Bitmap(np.zeros((3, 5, 4), dtype=np.float32))

    def test_from_rgb_defaults_to_opaque(self) -> None:
        bitmap = Bitmap.from_rgb(np.zeros((2, 2, 3), dtype=np.uint8))
        assert (bitmap.alpha == 255).all()

    def test_decode_png_to_rgba(self, sample_png: bytes, sample_rgba: np.ndarray) -> None:
        bitmap = decode_image(sample_png)
        np.testing.assert_array_equal(bitmap.pixels, sample_rgba)

    def test_decode_grayscale_jpeg(self) -> None:
        data = _encode_image(np.full((8, 6), 128, dtype=np.uint8), fmt="JPEG")
        bitmap = decode_image(data)
        assert (bitmap.width, bitmap.height) == (6, 8)
        assert (bitmap.alpha == 255).all()

    def test_decode_garbage_raises(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode_image(b"definitely not an image")
        assert exc_info.value.stage == "normalize"

    def test_decode_empty_raises(self) -> None:
        with pytest.raises(DecodeError):
            decode_image(b"")

    def test_decode_truncated_png_raises(self, sample_png: bytes) -> None:
        with pytest.raises(DecodeError):
            decode_image(sample_png[: len(sample_png) // 2])

    def test_encode_png_is_lossless(self) -> None:
        bitmap = _random_bitmap()
        decoded = np.array(Image.open(io.BytesIO(encode_png(bitmap))))
        np.testing.assert_array_equal(decoded, bitmap.pixels)

    def test_data_url(self) -> None:
        assert to_data_url(b"\x89PNG").startswith("data:image/png;base64,")


class TestResize:
    """Tests for width-capped resizing."""

    def test_scale_down_to_cap(self) -> None:
        assert compute_scaled_size(2000, 100, 1600) == (1600, 80)

    def test_rounds_height(self) -> None:
        assert compute_scaled_size(3000, 1001, 1600) == (1600, 534)

    def test_never_upscales(self) -> None:
        assert compute_scaled_size(100, 50, 1600) == (100, 50)

    def test_dimensions_at_least_one(self) -> None:
        assert compute_scaled_size(5000, 1, 10) == (10, 1)

    def test_invalid_sizes_raise(self) -> None:
        with pytest.raises(ValueError):
            compute_scaled_size(0, 10, 100)
        with pytest.raises(ValueError):
            compute_scaled_size(10, 10, 0)

    @pytest.mark.parametrize("width", [1, 799, 800, 801, 4000])
    def test_width_never_exceeds_cap(self, width: int) -> None:
        new_w, _ = compute_scaled_size(width, 30, 800)
        assert new_w <= 800
        assert new_w <= width

    def test_resize_bitmap(self, wide_png: bytes) -> None:
        result = resize_to_width(decode_image(wide_png), 1600)
        assert (result.width, result.height) == (1600, 80)

    def test_resize_is_deterministic(self, wide_png: bytes) -> None:
        bitmap = decode_image(wide_png)
        first = resize_to_width(bitmap, 333)
        second = resize_to_width(bitmap, 333)
        np.testing.assert_array_equal(first.pixels, second.pixels)

    def test_small_image_copied_not_aliased(self) -> None:
        bitmap = _random_bitmap()
        result = resize_to_width(bitmap, 1600)
        np.testing.assert_array_equal(result.pixels, bitmap.pixels)
        assert result.pixels is not bitmap.pixels


class TestGrayscale:
    """Tests for BT.709 grayscale conversion."""

    def test_primary_colors(self) -> None:
        rgb = np.array([[[255, 0, 0], [0, 255, 0], [0, 0, 255]]])
        result = to_grayscale(_bitmap(rgb))
        assert result.pixels[0, 0, :3].tolist() == [54, 54, 54]
        assert result.pixels[0, 1, :3].tolist() == [182, 182, 182]
        assert result.pixels[0, 2, :3].tolist() == [18, 18, 18]

    def test_alpha_preserved(self) -> None:
        result = to_grayscale(_bitmap(np.full((2, 2, 3), 90), alpha=100))
        assert (result.alpha == 100).all()

    def test_gray_input_unchanged(self) -> None:
        rgb = np.full((4, 4, 3), 230)
        result = to_grayscale(_bitmap(rgb))
        assert (result.rgb == 230).all()

    def test_input_not_mutated(self) -> None:
        bitmap = _random_bitmap()
        before = bitmap.pixels.copy()
        to_grayscale(bitmap)
        np.testing.assert_array_equal(bitmap.pixels, before)


class TestOtsu:
    """Tests for Otsu threshold selection."""

    def test_bimodal_threshold_between_peaks(self) -> None:
        hist = np.zeros(256, dtype=np.int64)
        hist[40:61] = 10
        hist[190:211] = 10
        threshold = otsu_threshold(hist)
        assert 50 < threshold < 200
        assert threshold == 60

    def test_ties_resolve_to_first_threshold(self) -> None:
        hist = np.zeros(256, dtype=np.int64)
        hist[50] = 100
        hist[200] = 100
        assert otsu_threshold(hist) == 50

    def test_single_value_defaults(self) -> None:
        hist = np.zeros(256, dtype=np.int64)
        hist[180] = 4
        assert otsu_threshold(hist) == DEFAULT_THRESHOLD

    def test_empty_histogram_defaults(self) -> None:
        assert otsu_threshold(np.zeros(256, dtype=np.int64)) == DEFAULT_THRESHOLD

    def test_wrong_bucket_count_raises(self) -> None:
        with pytest.raises(ValueError):
            otsu_threshold(np.zeros(10, dtype=np.int64))

    def test_histogram_counts(self) -> None:
        channel = np.array([[0, 0, 255], [7, 7, 7]], dtype=np.uint8)
        hist = intensity_histogram(channel)
        assert len(hist) == 256
        assert hist[0] == 2
        assert hist[7] == 3
        assert hist[255] == 1
        assert hist.sum() == channel.size


class TestBinarize:
    """Tests for binarization."""

    def test_uniform_bright_image(self) -> None:
        result, threshold = binarize(_bitmap(np.full((2, 2, 3), 200)))
        assert threshold == 127
        assert (result.rgb == 255).all()

    def test_uniform_dark_image(self) -> None:
        result, threshold = binarize(_bitmap(np.full((2, 2, 3), 100)))
        assert threshold == 127
        assert (result.rgb == 0).all()

    def test_output_is_binary(self) -> None:
        result, _ = binarize(to_grayscale(_random_bitmap(40, 40)))
        assert set(np.unique(result.rgb)).issubset({0, 255})

    def test_idempotent_on_binary_image(self) -> None:
        first, _ = binarize(to_grayscale(_random_bitmap(40, 40)))
        second, _ = binarize(first)
        np.testing.assert_array_equal(first.pixels, second.pixels)

    def test_uses_red_channel_without_grayscale(self) -> None:
        rgb = np.array([[[200, 0, 0], [10, 255, 255]]])
        result, threshold = binarize(_bitmap(rgb))
        assert threshold == 10
        assert result.pixels[0, 0, :3].tolist() == [255, 255, 255]
        assert result.pixels[0, 1, :3].tolist() == [0, 0, 0]

    def test_alpha_preserved(self) -> None:
        result, _ = binarize(_bitmap(np.full((3, 3, 3), 40), alpha=17))
        assert (result.alpha == 17).all()


class TestSharpen:
    """Tests for the 3x3 sharpening convolution."""

    def test_border_pixels_unchanged(self) -> None:
        bitmap = _random_bitmap()
        result = sharpen(bitmap)
        np.testing.assert_array_equal(result.pixels[0], bitmap.pixels[0])
        np.testing.assert_array_equal(result.pixels[-1], bitmap.pixels[-1])
        np.testing.assert_array_equal(result.pixels[:, 0], bitmap.pixels[:, 0])
        np.testing.assert_array_equal(result.pixels[:, -1], bitmap.pixels[:, -1])

    def test_interior_matches_kernel(self) -> None:
        bitmap = _random_bitmap()
        src = bitmap.rgb.astype(np.int32)
        expected = (
            5 * src[1:-1, 1:-1]
            - src[:-2, 1:-1]
            - src[2:, 1:-1]
            - src[1:-1, :-2]
            - src[1:-1, 2:]
        )
        expected = np.clip(expected, 0, 255).astype(np.uint8)
        result = sharpen(bitmap)
        np.testing.assert_array_equal(result.pixels[1:-1, 1:-1, :3], expected)

    def test_alpha_untouched(self) -> None:
        bitmap = _random_bitmap()
        result = sharpen(bitmap)
        np.testing.assert_array_equal(result.alpha, bitmap.alpha)

    def test_uniform_image_unchanged(self) -> None:
        bitmap = _bitmap(np.full((5, 5, 3), 120))
        np.testing.assert_array_equal(sharpen(bitmap).pixels, bitmap.pixels)

    def test_tiny_image_unchanged(self) -> None:
        bitmap = _random_bitmap(2, 2)
        np.testing.assert_array_equal(sharpen(bitmap).pixels, bitmap.pixels)

    def test_input_not_mutated(self) -> None:
        bitmap = _random_bitmap()
        before = bitmap.pixels.copy()
        sharpen(bitmap)
        np.testing.assert_array_equal(bitmap.pixels, before)


class TestQualityMetrics:
    """Tests for image quality measurement functions."""

    def test_blank_image_has_no_sharpness(self) -> None:
        assert calculate_sharpness(_bitmap(np.zeros((10, 10, 3)))) == 0.0

    def test_contrast_of_two_tone_image(self, sample_png: bytes) -> None:
        assert calculate_contrast(decode_image(sample_png)) > 0


class TestNormalizer:
    """Tests for the full normalization pipeline."""

    def test_defaults_produce_binary_png(self, sample_png: bytes) -> None:
        result = normalize(sample_png)
        assert isinstance(result, NormalizedImage)
        assert isinstance(result.metrics, QualityMetrics)
        assert result.threshold == 30
        assert set(np.unique(result.bitmap.rgb)).issubset({0, 255})
        decoded = np.array(Image.open(io.BytesIO(result.png_bytes)))
        np.testing.assert_array_equal(decoded, result.bitmap.pixels)

    def test_text_becomes_black(self, sample_png: bytes) -> None:
        result = normalize(sample_png)
        assert (result.bitmap.rgb[25, 20] == 0).all()
        assert (result.bitmap.rgb[5, 5] == 255).all()

    def test_preview_uses_same_bytes(self, sample_png: bytes) -> None:
        result = normalize(sample_png)
        assert result.preview_data_url == to_data_url(result.png_bytes)

    def test_all_steps_disabled(self, sample_png: bytes, sample_rgba: np.ndarray) -> None:
        config = NormalizationConfig(to_gray=False, binarize=False, sharpen=False)
        result = normalize(sample_png, config)
        assert result.threshold is None
        np.testing.assert_array_equal(result.bitmap.pixels, sample_rgba)

    def test_width_capped(self, wide_png: bytes) -> None:
        result = normalize(wide_png, NormalizationConfig(max_width=500))
        assert result.bitmap.width == 500
        assert result.bitmap.height == 25
        assert result.original_size == (2000, 100)

    def test_sharpen_enabled(self, sample_png: bytes) -> None:
        config = NormalizationConfig(binarize=False, sharpen=True)
        result = Normalizer(config).normalize(sample_png)
        assert result.bitmap.rgb[20, 10, 0] < 30

    def test_deterministic(self, sample_png: bytes) -> None:
        config = NormalizationConfig(sharpen=True)
        first = normalize(sample_png, config)
        second = normalize(sample_png, config)
        assert first.png_bytes == second.png_bytes

    def test_decode_error_propagates(self) -> None:
        with pytest.raises(DecodeError):
            normalize(b"\x00\x01\x02")
