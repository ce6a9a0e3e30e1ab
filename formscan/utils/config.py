"""Configuration management for formscan.

Loads and validates YAML configuration with sensible defaults for
normalization, recognition, extraction, submission and the OCR backend.
"""

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, PositiveInt

logger = logging.getLogger(__name__)

DEFAULT_CHAR_WHITELIST = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-:/.,() "
)


class NormalizationConfig(BaseModel):
    """Flags controlling the image normalization steps for one run."""

    model_config = ConfigDict(frozen=True)

    max_width: PositiveInt = 1600
    to_gray: bool = True
    binarize: bool = True
    sharpen: bool = False


class RecognitionConfig(BaseModel):
    """Configuration for the text recognizer."""

    engine: Literal["tesseract", "remote"] = "tesseract"
    tesseract_cmd: str | None = None
    lang: str = "eng"
    psm: int = 3
    char_whitelist: str = DEFAULT_CHAR_WHITELIST
    backend_url: str = "http://localhost:5000/ocr"
    timeout: float = 60.0


class ExtractionConfig(BaseModel):
    """Configuration for rule-based field extraction."""

    default_doc_type: str = "die_repair_request"
    rules_path: str | None = None


class SubmissionConfig(BaseModel):
    """Configuration for submitting extracted records."""

    endpoint_url: str | None = None
    timeout: float = 30.0


class BackendConfig(BaseModel):
    """Configuration for the ``/ocr`` backend that forwards to OCR.space."""

    ocr_space_url: str = "https://api.ocr.space/parse/image"
    api_key_env: str = "OCR_API_KEY"
    language: str = "eng"
    ocr_engine: int = 2
    upload_dir: str = "uploads"
    timeout: float = 60.0

    def resolve_api_key(self) -> str | None:
        """Return the OCR.space API key from the environment, if set."""
        return os.environ.get(self.api_key_env) or None


class AppConfig(BaseModel):
    """Top-level application configuration."""

    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    recognition: RecognitionConfig = Field(default_factory=RecognitionConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    submission: SubmissionConfig = Field(default_factory=SubmissionConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
