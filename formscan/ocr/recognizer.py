"""Recognizer boundary: options, progress stream and scoped lifecycle.

Recognizers own an external resource (a Tesseract process check, an HTTP
session) that is acquired by :meth:`Recognizer.open` and must be released
by :meth:`Recognizer.close` on every exit path. Use
:func:`recognition_session` rather than calling them directly.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from formscan.utils.config import DEFAULT_CHAR_WHITELIST
from formscan.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """A recognizer progress report."""

    stage: str
    progress: float


@dataclass(frozen=True)
class RecognitionOptions:
    """Options passed to a recognizer for one call."""

    char_whitelist: str = DEFAULT_CHAR_WHITELIST
    lang: str = "eng"
    psm: int = 3


ProgressListener = Callable[[ProgressEvent], None]


@dataclass
class ProgressChannel:
    """Ordered progress stream for recognition runs.

    Every emitted event is recorded and forwarded to each listener
    synchronously, in emission order. Within a run the reported progress
    never decreases: a lower value is raised to the last one seen.
    """

    listeners: list[ProgressListener] = field(default_factory=list)
    events: list[ProgressEvent] = field(default_factory=list)
    _last: float = 0.0

    def subscribe(self, listener: ProgressListener) -> None:
        self.listeners.append(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def begin_run(self) -> None:
        """Start a new run, clearing recorded events and the progress floor."""
        self.events = []
        self._last = 0.0

    def emit(self, stage: str, progress: float) -> ProgressEvent:
        """Record and forward one progress event.

        Args:
            stage: Human-readable stage label.
            progress: Fraction complete; clamped to [0, 1].

        Returns:
            The event as delivered to listeners.
        """
        value = max(self._last, min(1.0, max(0.0, float(progress))))
        self._last = value
        event = ProgressEvent(stage=stage, progress=value)
        self.events.append(event)
        for listener in list(self.listeners):
            listener(event)
        return event


def ignore_progress(stage: str, progress: float) -> None:
    return None


class Recognizer(ABC):
    """Base class for text recognizers."""

    name = "recognizer"

    def __init__(self) -> None:
        self.is_open = False

    def open(self) -> None:
        """Acquire the recognizer's resources."""
        self.is_open = True

    def close(self) -> None:
        """Release the recognizer's resources. Safe to call repeatedly."""
        self.is_open = False

    @abstractmethod
    def recognize(
        self,
        image: bytes,
        options: RecognitionOptions,
        progress: Callable[[str, float], object] = ignore_progress,
    ) -> str:
        """Recognize text in an encoded image.

        Args:
            image: Encoded image bytes, normally PNG.
            options: Whitelist, language and segmentation options.
            progress: Called with ``(stage, fraction)`` as work advances.

        Returns:
            Recognized text, possibly empty.

        Raises:
            RecognitionError: If recognition fails.
        """


@contextmanager
def recognition_session(recognizer: Recognizer) -> Iterator[Recognizer]:
    """Open a recognizer and close it on every exit path."""
    logger.debug("Opening %s recognizer", recognizer.name)
    try:
        recognizer.open()
        yield recognizer
    finally:
        recognizer.close()
        logger.debug("Closed %s recognizer", recognizer.name)
