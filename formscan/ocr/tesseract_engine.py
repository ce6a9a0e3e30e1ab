"""Tesseract recognizer using pytesseract.

Restricts recognition to a character whitelist and reports coarse
progress around the single Tesseract invocation.
"""

import io
import shlex
from collections.abc import Callable

import pytesseract
from PIL import Image, UnidentifiedImageError

from formscan.utils.exceptions import RecognitionError
from formscan.utils.logger import get_logger

from .recognizer import RecognitionOptions, Recognizer, ignore_progress

logger = get_logger(__name__)


def build_tesseract_config(options: RecognitionOptions) -> str:
    """Build the Tesseract command-line config for the given options.

    Args:
        options: Recognition options.

    Returns:
        Config string with page segmentation mode and whitelist.
    """
    config = f"--psm {options.psm}"
    if options.char_whitelist:
        whitelist = shlex.quote(f"tessedit_char_whitelist={options.char_whitelist}")
        config += f" -c {whitelist}"
    return config


class TesseractRecognizer(Recognizer):
    """Recognizer backed by a local Tesseract installation.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
    """

    name = "tesseract"

    def __init__(self, tesseract_cmd: str | None = None) -> None:
        super().__init__()
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.version: str | None = None

    def open(self) -> None:
        """Check that the Tesseract binary can be executed.

        Raises:
            RecognitionError: If Tesseract is not installed or not runnable.
        """
        try:
            self.version = str(pytesseract.get_tesseract_version())
        except pytesseract.TesseractNotFoundError as exc:
            raise RecognitionError(
                "Tesseract is not installed or not in PATH",
                details={"cause": str(exc)},
            ) from exc
        super().open()
        logger.debug("Using Tesseract %s", self.version)

    def recognize(
        self,
        image: bytes,
        options: RecognitionOptions,
        progress: Callable[[str, float], object] = ignore_progress,
    ) -> str:
        if not self.is_open:
            raise RecognitionError("Tesseract recognizer used outside its session")

        progress("loading image", 0.0)
        try:
            pil_image = Image.open(io.BytesIO(image))
            pil_image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise RecognitionError(
                "Recognizer could not read the image", details={"cause": str(exc)}
            ) from exc

        progress("recognizing text", 0.1)
        try:
            text = pytesseract.image_to_string(
                pil_image, lang=options.lang, config=build_tesseract_config(options)
            )
        except pytesseract.TesseractError as exc:
            raise RecognitionError(
                "Tesseract recognition failed", details={"cause": str(exc)}
            ) from exc

        progress("recognizing text", 1.0)
        logger.info("Tesseract recognized %d characters", len(text))
        return text
