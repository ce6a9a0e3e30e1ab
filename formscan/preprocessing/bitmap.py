"""RGBA bitmap container with Pillow decode and PNG encode.

A :class:`Bitmap` is the unit every normalization step consumes and
produces. Steps never mutate a bitmap they did not create; each returns
a fresh bitmap that replaces its input.
"""

import base64
import io
from dataclasses import dataclass

import numpy as np
from PIL import Image, UnidentifiedImageError

from formscan.utils.exceptions import DecodeError
from formscan.utils.logger import get_logger

logger = get_logger(__name__)

CHANNELS = 4


@dataclass(frozen=True)
class Bitmap:
    """Decoded RGBA pixel buffer.

    Attributes:
        pixels: ``uint8`` array of shape ``(height, width, 4)``.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Bitmap pixels must be uint8, got {self.pixels.dtype}")
        if self.pixels.ndim != 3 or self.pixels.shape[2] != CHANNELS:
            raise ValueError(f"Bitmap pixels must be HxWx4, got {self.pixels.shape}")
        if self.pixels.shape[0] < 1 or self.pixels.shape[1] < 1:
            raise ValueError("Bitmap dimensions must be positive")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    def copy(self) -> "Bitmap":
        return Bitmap(self.pixels.copy())

    @classmethod
    def from_rgb(cls, rgb: np.ndarray, alpha: np.ndarray | None = None) -> "Bitmap":
        """Build a bitmap from an RGB array and an optional alpha plane.

        Args:
            rgb: ``(height, width, 3)`` array of channel values.
            alpha: ``(height, width)`` alpha plane, fully opaque when omitted.

        Returns:
            New bitmap owning its own buffer.
        """
        height, width = rgb.shape[:2]
        pixels = np.empty((height, width, CHANNELS), dtype=np.uint8)
        pixels[:, :, :3] = rgb
        pixels[:, :, 3] = 255 if alpha is None else alpha
        return cls(pixels)


def decode_image(data: bytes) -> Bitmap:
    """Decode raw image bytes into an RGBA bitmap.

    Args:
        data: Encoded raster image (PNG, JPEG, TIFF, BMP, ...).

    Returns:
        Decoded bitmap.

    Raises:
        DecodeError: If the bytes cannot be parsed as a supported image.
    """
    if not data:
        raise DecodeError("Empty image payload")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(
            "Unsupported or corrupted image", details={"cause": str(exc)}
        ) from exc

    bitmap = Bitmap(np.array(rgba, dtype=np.uint8))
    logger.debug("Decoded %dx%d image", bitmap.width, bitmap.height)
    return bitmap


def encode_png(bitmap: Bitmap) -> bytes:
    """Encode a bitmap as lossless PNG bytes."""
    buf = io.BytesIO()
    Image.fromarray(bitmap.pixels).save(buf, format="PNG")
    return buf.getvalue()


def to_data_url(png_bytes: bytes) -> str:
    """Wrap PNG bytes in a ``data:`` URL for previews."""
    encoded = base64.b64encode(png_bytes).decode("ascii")
    return f"data:image/png;base64,{encoded}"
