"""FastAPI application for formscan.

Provides the ``/ocr`` backend that forwards uploads to OCR.space, a
local end-to-end ``/extract`` endpoint, the document type listing and
a health check.
"""

import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from formscan.extraction.field_rules import load_field_config
from formscan.extraction.rule_extractor import RuleExtractor
from formscan.ocr.factory import build_options, build_recognizer
from formscan.ocr.ocr_space import OCRSpaceClient
from formscan.pipeline.orchestrator import PipelineOrchestrator
from formscan.utils.config import AppConfig, BackendConfig, load_config
from formscan.utils.exceptions import DecodeError, FormScanError, RecognitionError
from formscan.utils.logger import get_logger

from .schemas import (
    DocTypeInfo,
    DocTypesResponse,
    ExtractionResponse,
    FieldRuleInfo,
    HealthResponse,
    OCRErrorResponse,
    OCRTextResponse,
    ProgressEventResponse,
)

logger = get_logger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="formscan OCR API",
    description="Normalize document photos, recognize text and extract form fields",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "image/bmp",
    "image/webp",
    "application/octet-stream",
}


def _get_components(config: AppConfig) -> PipelineOrchestrator:
    """Build a fresh orchestrator for one request."""
    extractor = RuleExtractor(load_field_config(config.extraction.rules_path))
    return PipelineOrchestrator(extractor)


def _get_ocr_client(config: BackendConfig) -> OCRSpaceClient:
    return OCRSpaceClient(config.resolve_api_key() or "", config)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    config = load_config()
    return HealthResponse(
        status="healthy",
        version=VERSION,
        tesseract_available=shutil.which("tesseract") is not None,
        ocr_api_key_configured=config.backend.resolve_api_key() is not None,
    )


@app.post(
    "/ocr",
    response_model=OCRTextResponse,
    responses={500: {"model": OCRErrorResponse}},
)
async def ocr_upload(file: Annotated[UploadFile, File(...)]) -> OCRTextResponse:
    """Recognize an uploaded image with OCR.space.

    The upload is written to a temporary file that is removed once the
    request is handled, whatever the outcome.
    """
    config = load_config()
    upload_dir = Path(config.backend.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        dir=upload_dir, suffix=Path(file.filename or "").suffix
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as out:
            shutil.copyfileobj(file.file, out)

        mime_type = file.content_type
        if not mime_type or not mime_type.startswith("image/"):
            mime_type = None

        client = _get_ocr_client(config.backend)
        text = client.parse_file(tmp_path, mime_type=mime_type)
        return OCRTextResponse(text=text)
    except Exception as exc:
        logger.error("OCR error: %s", exc)
        return JSONResponse(status_code=500, content={"error": "OCR failed"})
    finally:
        tmp_path.unlink(missing_ok=True)


@app.post("/extract", response_model=ExtractionResponse)
async def extract_document(
    file: Annotated[UploadFile, File(...)],
    doc_type: Annotated[str | None, Query()] = None,
    max_width: Annotated[int | None, Query(gt=0)] = None,
    to_gray: Annotated[bool | None, Query()] = None,
    binarize: Annotated[bool | None, Query()] = None,
    sharpen: Annotated[bool | None, Query()] = None,
) -> ExtractionResponse:
    """Run the full pipeline on an uploaded image.

    Args:
        file: Uploaded document image.
        doc_type: Document type selecting the field rules.
        max_width: Override of the normalization width cap.
        to_gray: Override of the grayscale flag.
        binarize: Override of the binarization flag.
        sharpen: Override of the sharpening flag.

    Returns:
        Extracted fields, raw text and run details.
    """
    start_time = time.time()

    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )

    config = load_config()
    overrides = {
        "max_width": max_width,
        "to_gray": to_gray,
        "binarize": binarize,
        "sharpen": sharpen,
    }
    normalization = config.normalization.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    doc_type = doc_type or config.extraction.default_doc_type

    orchestrator = _get_components(config)
    content = await file.read()

    try:
        orchestrator.load_image(content, file.filename or "document")
        normalized = orchestrator.normalize(normalization)
        orchestrator.recognize(
            build_recognizer(config.recognition), build_options(config.recognition)
        )
        result = orchestrator.extract(doc_type)
    except DecodeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RecognitionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except FormScanError as exc:
        logger.error("Extraction failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return ExtractionResponse(
        success=True,
        doc_type=result.doc_type,
        resolved_doc_type=result.resolved_doc_type,
        fields=result.fields,
        form_fields=result.form_fields(),
        raw_text=result.raw_text,
        threshold=normalized.threshold,
        image_width=normalized.bitmap.width,
        image_height=normalized.bitmap.height,
        progress=[
            ProgressEventResponse(stage=e.stage, progress=e.progress)
            for e in orchestrator.progress.events
        ],
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@app.get("/doc-types", response_model=DocTypesResponse)
async def list_doc_types() -> DocTypesResponse:
    """List document types and their field rules."""
    config = load_config()
    field_config = load_field_config(config.extraction.rules_path)
    return DocTypesResponse(
        doc_types=[
            DocTypeInfo(
                name=name,
                fields=[
                    FieldRuleInfo(
                        key=rule.key,
                        label=rule.label,
                        capture_strategy=rule.capture_strategy,
                        postprocess=list(rule.postprocess),
                    )
                    for rule in rules
                ],
            )
            for name, rules in field_config.items()
        ]
    )
