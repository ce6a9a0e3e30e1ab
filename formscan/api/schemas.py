"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel


class OCRTextResponse(BaseModel):
    """Response of the ``/ocr`` backend endpoint."""

    text: str


class OCRErrorResponse(BaseModel):
    """Error body of the ``/ocr`` backend endpoint."""

    error: str


class ProgressEventResponse(BaseModel):
    """One recognizer progress event."""

    stage: str
    progress: float


class ExtractionResponse(BaseModel):
    """Response schema for a document extraction request."""

    success: bool
    doc_type: str
    resolved_doc_type: str
    fields: dict[str, str]
    form_fields: dict[str, str]
    raw_text: str
    threshold: int | None = None
    image_width: int
    image_height: int
    progress: list[ProgressEventResponse]
    processing_time_ms: float


class FieldRuleInfo(BaseModel):
    """Description of one field rule."""

    key: str
    label: str
    capture_strategy: str
    postprocess: list[str]


class DocTypeInfo(BaseModel):
    """A document type and its ordered field rules."""

    name: str
    fields: list[FieldRuleInfo]


class DocTypesResponse(BaseModel):
    """Response schema listing available document types."""

    doc_types: list[DocTypeInfo]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    ocr_api_key_configured: bool
