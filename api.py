"""
POA Compliance Validator: FastAPI Server
========================================

Thin HTTP boundary over the validation engine and the quota gate.

Endpoints:
    POST /validate          Validate already-extracted document text
    POST /validate/file     Upload a PDF or image for validation
    GET  /quota             Current monthly usage of the caller
    GET  /health            Health check

The caller is identified by the ``X-User-Id`` header. The quota gate runs
before any validation work; a rejection is answered with HTTP 402 and the
data needed for an upgrade prompt.

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from poa_validator import __version__
from poa_validator.config import configure_logging, get_settings
from poa_validator.exceptions import (
    ComplianceError,
    ExtractionFailure,
    QuotaConflictError,
    QuotaExceeded,
    UnknownUserError,
)
from poa_validator.models import (
    DocumentValidationReport,
    ExtractedText,
    QuotaDecision,
    ValidationResult,
)
from poa_validator.pipeline import DocumentValidationPipeline
from poa_validator.quota import InMemoryQuotaStore, QuotaGate

load_dotenv()


# ─── Application Lifespan ────────────────────────────────────────────

_pipeline: DocumentValidationPipeline | None = None
_gate: QuotaGate | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline and the quota gate on startup."""
    global _pipeline, _gate  # noqa: PLW0603
    settings = get_settings()
    configure_logging(settings.log_level)
    _pipeline = DocumentValidationPipeline(settings=settings)
    _gate = QuotaGate(
        InMemoryQuotaStore(default_tier=settings.default_user_tier),
        max_attempts=settings.quota_commit_attempts,
    )
    yield
    _pipeline = None
    _gate = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="POA Compliance Validator API",
    description=(
        "Deterministic validation of California powers of attorney: "
        "notarization, witnesses, cremation authority and required verbiage."
    ),
    version=__version__,
    lifespan=lifespan,
)

_ERROR_STATUS: dict[type[ComplianceError], int] = {
    QuotaExceeded: 402,
    UnknownUserError: 404,
    QuotaConflictError: 409,
    ExtractionFailure: 422,
}


@app.exception_handler(ComplianceError)
async def compliance_error_handler(request: Request, exc: ComplianceError) -> JSONResponse:
    """Every engine failure becomes a structured JSON body."""
    status_code = _ERROR_STATUS.get(type(exc), 500)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


# ─── Request / Response Schemas ─────────────────────────────────────


class ValidateRequest(BaseModel):
    """Request body for the /validate endpoint."""

    text: str = Field(
        ...,
        min_length=10,
        description="Text already extracted from the document (PDF text layer or OCR).",
    )
    ocr_confidence: float = Field(
        default=0.0, ge=0, le=100, description="Extraction confidence, 0-100."
    )


class ValidateResponse(BaseModel):
    result: ValidationResult
    quota: QuotaDecision


class FileValidateResponse(BaseModel):
    report: DocumentValidationReport
    quota: QuotaDecision


class HealthResponse(BaseModel):
    status: str
    version: str


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_pipeline() -> DocumentValidationPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return _pipeline


def _get_gate() -> QuotaGate:
    if _gate is None:
        raise HTTPException(status_code=503, detail="Quota gate not initialised")
    return _gate


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/validate",
    summary="Validate extracted POA text",
    tags=["Validation"],
    responses={402: {"description": "Monthly quota exceeded"}},
)
def validate_text(
    request: ValidateRequest, x_user_id: str = Header(..., min_length=1)
) -> ValidateResponse:
    """Consume one validation from the caller's quota and validate the text."""
    pipeline = _get_pipeline()
    decision = _get_gate().require(x_user_id)

    result = pipeline.validate_document(
        ExtractedText(text=request.text, confidence=request.ocr_confidence)
    )
    return ValidateResponse(result=result, quota=decision)


@app.post(
    "/validate/file",
    summary="Validate an uploaded PDF or image",
    tags=["Validation"],
    responses={
        402: {"description": "Monthly quota exceeded"},
        413: {"description": "File too large"},
        422: {"description": "Document could not be read"},
    },
)
async def validate_file(
    file: UploadFile, x_user_id: str = Header(..., min_length=1)
) -> FileValidateResponse:
    """Upload a PDF or scanned image. Images also get a quality analysis."""
    pipeline = _get_pipeline()
    max_bytes = pipeline.settings.max_upload_bytes

    if file.size and file.size > max_bytes:
        raise HTTPException(status_code=413, detail=f"File too large (max {max_bytes} bytes)")
    content = await file.read()
    if len(content) > max_bytes:
        raise HTTPException(status_code=413, detail=f"File too large (max {max_bytes} bytes)")

    decision = _get_gate().require(x_user_id)
    report = await asyncio.to_thread(pipeline.run, content, file.filename or "upload")
    return FileValidateResponse(report=report, quota=decision)


@app.get("/quota", summary="Current monthly usage", tags=["Quota"])
def quota_status(x_user_id: str = Header(..., min_length=1)) -> QuotaDecision:
    return _get_gate().status(x_user_id)


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and version."""
    _get_pipeline()
    return HealthResponse(status="healthy", version=__version__)
