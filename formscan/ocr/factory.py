"""Build recognizers and recognition options from configuration."""

from formscan.utils.config import RecognitionConfig

from .recognizer import RecognitionOptions, Recognizer
from .remote_engine import RemoteRecognizer
from .tesseract_engine import TesseractRecognizer


def build_recognizer(config: RecognitionConfig) -> Recognizer:
    """Create the recognizer selected by ``config.engine``."""
    if config.engine == "remote":
        return RemoteRecognizer(config.backend_url, timeout=config.timeout)
    return TesseractRecognizer(tesseract_cmd=config.tesseract_cmd)


def build_options(config: RecognitionConfig) -> RecognitionOptions:
    return RecognitionOptions(
        char_whitelist=config.char_whitelist, lang=config.lang, psm=config.psm
    )
