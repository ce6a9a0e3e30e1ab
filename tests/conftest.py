"""Shared test fixtures for the formscan test suite."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image


def encode_image(array: np.ndarray, fmt: str = "PNG") -> bytes:
    """Encode a numpy image array with Pillow."""
    buf = io.BytesIO()
    Image.fromarray(array).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def sample_rgba() -> np.ndarray:
    """Create a synthetic RGBA page: dark text block on a light background."""
    image = np.full((60, 80, 4), 230, dtype=np.uint8)
    image[:, :, 3] = 255
    image[20:40, 10:70, :3] = 30
    return image


@pytest.fixture
def sample_png(sample_rgba: np.ndarray) -> bytes:
    """PNG bytes of the synthetic page."""
    return encode_image(sample_rgba)


@pytest.fixture
def wide_png() -> bytes:
    """PNG bytes of an image wider than the default width cap."""
    image = np.zeros((100, 2000, 3), dtype=np.uint8)
    image[:, 1000:] = 255
    return encode_image(image)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
