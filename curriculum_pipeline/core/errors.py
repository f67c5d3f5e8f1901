"""
Error taxonomy for the curriculum pipeline.

Every failure carries an ErrorKind tag so that component boundaries can pass
outcomes by value (see processing.orchestrator.ProcessingOutcome) and the HTTP
layer can map them to status codes without string matching.

  not_found         referenced file or record does not exist
  unsupported_type  no extraction strategy for the file-type tag (terminal)
  extraction        the underlying parser failed (terminal, no auto retry)
  validation        content too short or too sparse (terminal)
  persistence       a status/text write failed
  conflict          record is already being processed by someone else
  not_ready         record has no validated text yet
  generation        the external generation service failed
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND        = "not_found"
    UNSUPPORTED_TYPE = "unsupported_type"
    EXTRACTION       = "extraction"
    VALIDATION       = "validation"
    PERSISTENCE      = "persistence"
    CONFLICT         = "conflict"
    NOT_READY        = "not_ready"
    GENERATION       = "generation"


class PipelineError(Exception):
    """Base class; subclasses pin `kind`."""

    kind: ErrorKind = ErrorKind.EXTRACTION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(PipelineError):
    kind = ErrorKind.NOT_FOUND


class UnsupportedTypeError(PipelineError):
    kind = ErrorKind.UNSUPPORTED_TYPE

    def __init__(self, file_type: str) -> None:
        super().__init__(f"Unsupported file type: {file_type}")
        self.file_type = file_type


class ExtractionError(PipelineError):
    kind = ErrorKind.EXTRACTION


class PersistenceError(PipelineError):
    kind = ErrorKind.PERSISTENCE


class MaterialBusyError(PipelineError):
    kind = ErrorKind.CONFLICT


class MaterialNotReadyError(PipelineError):
    kind = ErrorKind.NOT_READY


class InsufficientContentError(PipelineError):
    kind = ErrorKind.VALIDATION


class GenerationError(PipelineError):
    kind = ErrorKind.GENERATION


class ProcessingFailedError(PipelineError):
    """Raised by the manual trigger; `kind` is taken from the failed outcome."""

    def __init__(self, message: str, kind: ErrorKind) -> None:
        super().__init__(message)
        self.kind = kind
