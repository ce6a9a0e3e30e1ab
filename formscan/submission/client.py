"""Submission of extracted records to a caller-configured endpoint."""

from dataclasses import dataclass
from typing import Any

import requests
from pydantic import BaseModel, ConfigDict, Field

from formscan.extraction.field_rules import CORPUS_FIELD_KEY
from formscan.extraction.rule_extractor import ExtractionResult
from formscan.utils.exceptions import SubmissionError
from formscan.utils.logger import get_logger

logger = get_logger(__name__)


class SubmissionPayload(BaseModel):
    """Record sent to the submission endpoint as JSON."""

    model_config = ConfigDict(populate_by_name=True)

    doc_type: str = Field(alias="docType")
    fields: dict[str, str] = Field(default_factory=dict)
    raw_text: str = Field(default="", alias="rawText")

    @classmethod
    def from_extraction(
        cls, result: ExtractionResult, fields: dict[str, str] | None = None
    ) -> "SubmissionPayload":
        """Build a payload from an extraction result.

        Args:
            result: Extraction result providing the doc type and raw text.
            fields: Field values to send; the result's form fields (every
                expected key, empty when unmatched) when omitted. The
                corpus key is dropped since the raw text is sent anyway.
        """
        values = result.form_fields() if fields is None else fields
        return cls(
            doc_type=result.resolved_doc_type,
            fields={k: v for k, v in values.items() if k != CORPUS_FIELD_KEY},
            raw_text=result.raw_text,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass
class SubmissionResult:
    """Accepted submission response."""

    status_code: int
    body: Any


class SubmissionClient:
    """POSTs payloads to a submission endpoint. Nothing is retried.

    Args:
        endpoint_url: URL receiving the JSON payload.
        timeout: Request timeout in seconds.
    """

    def __init__(self, endpoint_url: str, timeout: float = 30.0) -> None:
        if not endpoint_url:
            raise SubmissionError("No submission endpoint configured")
        self.endpoint_url = endpoint_url
        self.timeout = timeout

    def submit(self, payload: SubmissionPayload) -> SubmissionResult:
        """Send one payload.

        Args:
            payload: Record to submit.

        Returns:
            Status and decoded body of the 2xx response.

        Raises:
            SubmissionError: On transport failure or a non-2xx response.
        """
        try:
            response = requests.post(
                self.endpoint_url, json=payload.to_json(), timeout=self.timeout
            )
        except requests.RequestException as exc:
            logger.error("Submission to %s failed: %s", self.endpoint_url, exc)
            raise SubmissionError(
                "Submission request failed",
                details={"url": self.endpoint_url, "cause": str(exc)},
            ) from exc

        body = _decode_body(response)
        if not 200 <= response.status_code < 300:
            logger.error(
                "Submission to %s rejected with status %d",
                self.endpoint_url,
                response.status_code,
            )
            raise SubmissionError(
                f"Submission rejected with status {response.status_code}",
                status_code=response.status_code,
                details={"response": body},
            )

        logger.info("Submitted %s record to %s", payload.doc_type, self.endpoint_url)
        return SubmissionResult(status_code=response.status_code, body=body)


def _decode_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"ok": response.ok, "status": response.status_code}
