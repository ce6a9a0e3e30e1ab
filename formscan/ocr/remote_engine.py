"""Recognizer that delegates to the ``/ocr`` HTTP backend."""

from collections.abc import Callable

import requests

from formscan.utils.exceptions import RecognitionError
from formscan.utils.logger import get_logger

from .recognizer import RecognitionOptions, Recognizer, ignore_progress

logger = get_logger(__name__)


class RemoteRecognizer(Recognizer):
    """Recognizer that uploads the image to an OCR backend.

    The backend accepts a multipart ``file`` and answers ``{"text": ...}``
    on success or ``{"error": ...}`` with a 5xx status on failure.

    Args:
        backend_url: Full URL of the backend's ``/ocr`` endpoint.
        timeout: Request timeout in seconds.
    """

    name = "remote"

    def __init__(self, backend_url: str, timeout: float = 60.0) -> None:
        super().__init__()
        self.backend_url = backend_url
        self.timeout = timeout
        self.session: requests.Session | None = None

    def open(self) -> None:
        self.session = requests.Session()
        super().open()

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
        super().close()

    def recognize(
        self,
        image: bytes,
        options: RecognitionOptions,
        progress: Callable[[str, float], object] = ignore_progress,
    ) -> str:
        if self.session is None:
            raise RecognitionError("Remote recognizer used outside its session")

        progress("uploading image", 0.0)
        try:
            response = self.session.post(
                self.backend_url,
                files={"file": ("page.png", image, "image/png")},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RecognitionError(
                "OCR backend request failed",
                details={"url": self.backend_url, "cause": str(exc)},
            ) from exc

        progress("awaiting result", 0.5)
        if not response.ok:
            raise RecognitionError(
                "OCR backend returned an error",
                details={
                    "status_code": response.status_code,
                    "error": _error_message(response),
                },
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise RecognitionError(
                "OCR backend returned invalid JSON", details={"cause": str(exc)}
            ) from exc
        if not isinstance(data, dict):
            raise RecognitionError(
                "OCR backend returned an unexpected body",
                details={"type": type(data).__name__},
            )

        text = data.get("text") or ""
        if not isinstance(text, str):
            raise RecognitionError(
                "OCR backend returned non-text output",
                details={"type": type(text).__name__},
            )

        progress("complete", 1.0)
        logger.info("Remote OCR returned %d characters", len(text))
        return text


def _error_message(response: requests.Response) -> str:
    try:
        return str(response.json().get("error", response.text))
    except ValueError:
        return response.text
