"""
Curriculum Processing — Pydantic Request/Response Schemas

Covers:
  - GET  /curriculum/{id}/status   status query
  - POST /curriculum/{id}/process  manual trigger
  - POST /curriculum/process-pending  batch sweep trigger
  - Structured error bodies for every ErrorKind

All timestamps are ISO-8601 UTC strings.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from curriculum_pipeline.core.errors import ErrorKind, PipelineError
from curriculum_pipeline.store.base import MaterialStatus


# ---------------------------------------------------------------------------
# Status query: GET /curriculum/{id}/status
# ---------------------------------------------------------------------------

class MaterialStatusResponse(BaseModel):
    """Polled by clients to track extraction progress."""
    id:                      UUID
    title:                   str
    status:                  MaterialStatus
    has_extracted_text:      bool = False
    error:                   str | None = Field(None, description="text_extraction_error, if any")
    processing_started_at:   datetime | None = None
    processing_completed_at: datetime | None = None
    has_analysis:            bool = Field(False, description="ai_summary has been stored")


# ---------------------------------------------------------------------------
# Manual trigger: POST /curriculum/{id}/process
# ---------------------------------------------------------------------------

class ManualProcessingResponse(BaseModel):
    extracted_text_length: int = Field(..., description="Characters of validated text")
    processing_time_ms:    int = Field(..., description="Wall time of the processing pass")


# ---------------------------------------------------------------------------
# Batch sweep: POST /curriculum/process-pending
# ---------------------------------------------------------------------------

class SweepResponse(BaseModel):
    """processed == succeeded + failed; skipped records were claimed elsewhere."""
    processed: int = 0
    succeeded: int = 0
    failed:    int = 0
    skipped:   int = 0
    sweep_in_progress: bool = Field(
        False,
        description="True when the request was dropped because a sweep was already running",
    )


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """One problem; validation errors produce one per offending field."""
    field:   str | None = Field(None, description="Offending request field, for validation errors")
    message: str
    code:    str        = Field(..., description="Same vocabulary as ErrorResponse.error_code")


class ErrorResponse(BaseModel):
    """
    Body of every 4xx/5xx response from the curriculum API.
    `error_code` is stable across releases; `message` is for humans.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


# ErrorKind → (HTTP status, error_code)
ERROR_KIND_MAP: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.NOT_FOUND:        (404, "NOT_FOUND"),
    ErrorKind.UNSUPPORTED_TYPE: (415, "UNSUPPORTED_FILE_TYPE"),
    ErrorKind.EXTRACTION:       (422, "EXTRACTION_FAILED"),
    ErrorKind.VALIDATION:       (422, "INSUFFICIENT_CONTENT"),
    ErrorKind.PERSISTENCE:      (500, "PERSISTENCE_ERROR"),
    ErrorKind.CONFLICT:         (409, "MATERIAL_BUSY"),
    ErrorKind.NOT_READY:        (409, "MATERIAL_NOT_READY"),
    ErrorKind.GENERATION:       (502, "GENERATION_FAILED"),
}


class CurriculumErrors:
    """Builds ErrorResponse bodies from pipeline errors and unexpected failures."""

    @staticmethod
    def from_pipeline_error(exc: PipelineError, request_id: str | None = None) -> tuple[int, ErrorResponse]:
        status_code, code = ERROR_KIND_MAP[exc.kind]
        return status_code, ErrorResponse(
            error_code=code,
            message=exc.message,
            details=[ErrorDetail(message=exc.message, code=code)],
            request_id=request_id,
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="Internal error while handling the curriculum request.",
            details=[],
            request_id=request_id,
        )
