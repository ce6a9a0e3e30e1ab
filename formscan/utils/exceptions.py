"""Error types raised by the formscan pipeline stages.

Every error carries the name of the stage that failed so callers can
report and log failures without inspecting the exception class.
"""


class FormScanError(Exception):
    """Base error for all pipeline failures.

    Args:
        message: Human-readable error message.
        stage: Name of the pipeline stage that failed.
        details: Optional extra context for display and logging.
    """

    stage = "pipeline"

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"[{self.stage}] {self.message} | {self.details}"
        return f"[{self.stage}] {self.message}"


class DecodeError(FormScanError):
    """Raised when input bytes are not a supported raster image."""

    stage = "normalize"


class RecognitionError(FormScanError):
    """Raised when the recognizer fails to set up or to recognize text."""

    stage = "recognize"


class SubmissionError(FormScanError):
    """Raised when the submission endpoint rejects or cannot receive a payload.

    Args:
        message: Human-readable error message.
        status_code: HTTP status of the response, ``None`` on transport failure.
        details: Optional extra context.
    """

    stage = "submit"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class PipelineStateError(FormScanError):
    """Raised when a command is issued in a state that does not allow it."""
