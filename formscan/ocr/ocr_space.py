"""OCR.space client used by the ``/ocr`` backend endpoint.

Uploads an image as a base64 data URL and returns the text of the first
parsed result.
"""

import base64
import mimetypes
from pathlib import Path

import requests

from formscan.utils.config import BackendConfig
from formscan.utils.exceptions import RecognitionError
from formscan.utils.logger import get_logger

logger = get_logger(__name__)


class OCRSpaceClient:
    """Thin client for the OCR.space ``parse/image`` API.

    Args:
        api_key: OCR.space API key.
        config: Backend configuration with endpoint, language and engine.
    """

    def __init__(self, api_key: str, config: BackendConfig | None = None) -> None:
        if not api_key:
            raise RecognitionError("OCR.space API key is not configured")
        self.api_key = api_key
        self.config = config or BackendConfig()

    def build_form(self, image: bytes, mime_type: str = "image/jpeg") -> dict[str, str]:
        """Build the form fields for one parse request."""
        encoded = base64.b64encode(image).decode("ascii")
        return {
            "apikey": self.api_key,
            "language": self.config.language,
            "isOverlayRequired": "true",
            "OCREngine": str(self.config.ocr_engine),
            "base64Image": f"data:{mime_type};base64,{encoded}",
        }

    def parse_file(self, path: Path, mime_type: str | None = None) -> str:
        """Recognize the text of an image file.

        Args:
            path: Image file to upload.
            mime_type: MIME type for the data URL; guessed from the suffix
                when omitted, JPEG if unknown.

        Returns:
            Text of the first parsed result, or an empty string.

        Raises:
            RecognitionError: On transport failure or a non-2xx response.
        """
        mime_type = mime_type or mimetypes.guess_type(path.name)[0] or "image/jpeg"
        form = self.build_form(path.read_bytes(), mime_type)

        try:
            response = requests.post(
                self.config.ocr_space_url, data=form, timeout=self.config.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise RecognitionError(
                "OCR.space request failed", details={"cause": str(exc)}
            ) from exc
        except ValueError as exc:
            raise RecognitionError(
                "OCR.space returned invalid JSON", details={"cause": str(exc)}
            ) from exc

        logger.debug("OCR.space response: %s", data)
        return extract_parsed_text(data)


def extract_parsed_text(data: dict) -> str:
    """Return the text of the first parsed result in an OCR.space response."""
    results = data.get("ParsedResults") or []
    if not results:
        if data.get("IsErroredOnProcessing"):
            logger.warning("OCR.space reported errors: %s", data.get("ErrorMessage"))
        return ""
    return results[0].get("ParsedText") or ""
