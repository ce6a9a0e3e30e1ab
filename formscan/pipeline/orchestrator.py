"""Pipeline orchestrator: a caller-driven state machine over one document.

The orchestrator owns a :class:`PipelineContext` holding everything a run
produces (input bytes, normalized image, recognized text, extraction,
payload) and hands stages only what they need for a single call.

States and commands::

    idle --load_image--> loaded --normalize--> normalized
    normalized --recognize--> recognizing --extract--> extracted
    extracted --submit--> submitting --> submitted | submit_failed
    submit_failed --submit--> submitting
    loaded/normalized/recognizing --failure--> error
    any --reset--> idle

A ``reset`` issued while recognition is in flight releases the recognizer
and discards the call's eventual result; it does not interrupt the call.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from formscan.extraction.rule_extractor import ExtractionResult, RuleExtractor
from formscan.ocr.recognizer import (
    ProgressChannel,
    RecognitionOptions,
    Recognizer,
    recognition_session,
)
from formscan.preprocessing.pipeline import NormalizedImage, Normalizer
from formscan.submission.client import (
    SubmissionClient,
    SubmissionPayload,
    SubmissionResult,
)
from formscan.utils.config import NormalizationConfig
from formscan.utils.exceptions import (
    DecodeError,
    FormScanError,
    PipelineStateError,
    RecognitionError,
    SubmissionError,
)
from formscan.utils.logger import get_logger

logger = get_logger(__name__)


class PipelineState(StrEnum):
    """States of the document pipeline."""

    IDLE = "idle"
    LOADED = "loaded"
    NORMALIZED = "normalized"
    RECOGNIZING = "recognizing"
    EXTRACTED = "extracted"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    SUBMIT_FAILED = "submit_failed"
    ERROR = "error"


@dataclass
class PipelineContext:
    """Run state owned by the orchestrator."""

    source: bytes | None = None
    source_name: str = ""
    normalized: NormalizedImage | None = None
    text: str | None = None
    extraction: ExtractionResult | None = None
    edited_fields: dict[str, str] | None = None
    submission: SubmissionResult | None = None
    error: FormScanError | None = None


StateListener = Callable[[PipelineState, PipelineState], None]


class PipelineOrchestrator:
    """Sequences normalization, recognition, extraction and submission.

    Args:
        extractor: Field extractor; built-in rule tables when omitted.
        progress: Progress channel receiving recognizer events.
    """

    def __init__(
        self,
        extractor: RuleExtractor | None = None,
        progress: ProgressChannel | None = None,
    ) -> None:
        self.extractor = extractor or RuleExtractor()
        self.progress = progress or ProgressChannel()
        self.state = PipelineState.IDLE
        self.context = PipelineContext()
        self.generation = 0
        self._listeners: list[StateListener] = []
        self._active_recognizer: Recognizer | None = None

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback receiving ``(old_state, new_state)``."""
        self._listeners.append(listener)

    def _transition(self, new_state: PipelineState) -> None:
        old_state = self.state
        self.state = new_state
        logger.debug("Pipeline state %s -> %s", old_state, new_state)
        for listener in list(self._listeners):
            listener(old_state, new_state)

    def _require(self, command: str, *allowed: PipelineState) -> None:
        if self.state not in allowed:
            raise PipelineStateError(
                f"Cannot {command} in state '{self.state}'",
                details={"allowed": [str(s) for s in allowed]},
            )

    def _fail(self, error: FormScanError) -> None:
        self.context.error = error
        logger.error("Stage '%s' failed: %s", error.stage, error)
        self._transition(PipelineState.ERROR)

    def load_image(self, data: bytes, source_name: str = "") -> None:
        """Take ownership of raw image bytes for a new run."""
        self._require("load an image", PipelineState.IDLE)
        self.context.source = data
        self.context.source_name = source_name
        logger.info("Loaded %s (%d bytes)", source_name or "image", len(data))
        self._transition(PipelineState.LOADED)

    def normalize(self, config: NormalizationConfig | None = None) -> NormalizedImage:
        """Decode and normalize the loaded image.

        May be repeated with a different configuration before recognition.

        Raises:
            DecodeError: If the image cannot be decoded; state becomes error.
        """
        self._require("normalize", PipelineState.LOADED, PipelineState.NORMALIZED)
        if self.context.source is None:
            raise PipelineStateError("No image loaded")

        try:
            normalized = Normalizer(config).normalize(self.context.source)
        except DecodeError as exc:
            self._fail(exc)
            raise

        self.context.normalized = normalized
        self._transition(PipelineState.NORMALIZED)
        return normalized

    def recognize(
        self,
        recognizer: Recognizer,
        options: RecognitionOptions | None = None,
    ) -> str | None:
        """Recognize text in the normalized image.

        The recognizer is opened for this call only and closed on every
        exit path. Progress events go to :attr:`progress`.

        Returns:
            Recognized text, or ``None`` if the run was reset meanwhile.

        Raises:
            RecognitionError: If the recognizer fails; state becomes error.
        """
        self._require("recognize", PipelineState.NORMALIZED)
        if self.context.normalized is None:
            raise PipelineStateError("No normalized image to recognize")

        image = self.context.normalized.png_bytes
        generation = self.generation
        self.progress.begin_run()
        self._transition(PipelineState.RECOGNIZING)

        try:
            text = self._run_recognizer(
                recognizer, image, options or RecognitionOptions()
            )
        except RecognitionError as exc:
            if generation != self.generation:
                logger.warning("Discarding recognition failure of a reset run: %s", exc)
                return None
            self._fail(exc)
            raise
        finally:
            if generation == self.generation:
                self._active_recognizer = None

        if generation != self.generation:
            logger.info("Discarding recognition result of a reset run")
            return None

        self.context.text = text
        return text

    def _run_recognizer(
        self, recognizer: Recognizer, image: bytes, options: RecognitionOptions
    ) -> str:
        """Run one recognizer call inside its session.

        Failures other than :class:`RecognitionError` are wrapped so every
        recognizer failure reaches the error state the same way.
        """
        try:
            with recognition_session(recognizer) as session:
                self._active_recognizer = session
                return session.recognize(image, options, self.progress.emit)
        except RecognitionError:
            raise
        except Exception as exc:
            raise RecognitionError(
                "Recognizer failed unexpectedly",
                details={"recognizer": recognizer.name, "cause": repr(exc)},
            ) from exc

    def extract(self, doc_type: str) -> ExtractionResult:
        """Extract fields from the recognized text.

        May be repeated with another document type.
        """
        self._require("extract", PipelineState.RECOGNIZING, PipelineState.EXTRACTED)
        if self.context.text is None:
            raise PipelineStateError("Cannot extract before recognition completes")

        result = self.extractor.extract(self.context.text, doc_type)
        self.context.extraction = result
        self.context.edited_fields = result.form_fields()
        self._transition(PipelineState.EXTRACTED)
        return result

    def update_field(self, key: str, value: str) -> None:
        """Correct a field value before submission."""
        self._require(
            "edit fields", PipelineState.EXTRACTED, PipelineState.SUBMIT_FAILED
        )
        fields = self.context.edited_fields or {}
        if key not in fields:
            raise KeyError(f"Unknown field '{key}'")
        fields[key] = value.strip()

    def build_payload(self) -> SubmissionPayload:
        """Build the submission payload from the current extraction."""
        if self.context.extraction is None:
            raise PipelineStateError("Nothing has been extracted yet")
        return SubmissionPayload.from_extraction(
            self.context.extraction, dict(self.context.edited_fields or {})
        )

    def submit(self, client: SubmissionClient) -> SubmissionResult:
        """Submit the extracted record.

        Raises:
            SubmissionError: If the endpoint rejects the payload or cannot be
                reached; state becomes submit_failed and may be resubmitted.
        """
        self._require("submit", PipelineState.EXTRACTED, PipelineState.SUBMIT_FAILED)
        payload = self.build_payload()
        self._transition(PipelineState.SUBMITTING)

        try:
            result = client.submit(payload)
        except SubmissionError as exc:
            self.context.error = exc
            self._transition(PipelineState.SUBMIT_FAILED)
            raise

        self.context.submission = result
        self.context.error = None
        self._transition(PipelineState.SUBMITTED)
        return result

    def reset(self) -> None:
        """Discard all run state and return to idle."""
        if self._active_recognizer is not None:
            self._active_recognizer.close()
            self._active_recognizer = None
        self.generation += 1
        self.context = PipelineContext()
        self._transition(PipelineState.IDLE)

    def run(
        self,
        data: bytes,
        recognizer: Recognizer,
        doc_type: str,
        normalization: NormalizationConfig | None = None,
        options: RecognitionOptions | None = None,
        source_name: str = "",
    ) -> ExtractionResult:
        """Load, normalize, recognize and extract in one call."""
        self.load_image(data, source_name)
        self.normalize(normalization)
        if self.recognize(recognizer, options) is None:
            raise PipelineStateError("Run was reset during recognition")
        return self.extract(doc_type)
