"""
Processing Orchestrator — per-material state machine driver
════════════════════════════════════════════════════════════

    pending ──claim──► processing ──► completed
       ▲                   │
       │                   └────────► failed ──manual claim──► processing
       └─ (created at upload)

    processing (started more than stale_after_seconds ago) ──manual claim──► processing

process(material_id):
  1. Load the record (missing / soft-deleted → not_found outcome)
  2. completed → return the stored text; nothing is written
  3. Atomic claim: pending → processing (manual: pending | failed → processing,
     plus a processing record whose worker has been silent past the stale timeout).
     A lost claim is a `conflict` outcome and the record is left untouched.
  4. Extract (worker thread) → normalize → validate
  5. Persist completed or failed
  6. Any exception after the claim → best-effort mark failed; a second
     failure while writing that status is logged and swallowed
  7. Append a processing log row (best-effort)

process() never raises. Callers receive a ProcessingOutcome carrying an
ErrorKind tag instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import UUID

from curriculum_pipeline.core.errors import ErrorKind, PipelineError
from curriculum_pipeline.processing.extractors import ExtractorRegistry
from curriculum_pipeline.processing.normalizer import normalize
from curriculum_pipeline.processing.validator import (
    MIN_TEXT_CHARS,
    MIN_WORD_COUNT,
    count_words,
    validate,
)
from curriculum_pipeline.store.base import (
    MaterialStatus,
    MaterialStore,
    ProcessingLogEntry,
)

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "Failed to process curriculum file"

_SCHEDULED_CLAIM = (MaterialStatus.PENDING,)
_MANUAL_CLAIM    = (MaterialStatus.PENDING, MaterialStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProcessingOutcome:
    """
    success            : record is (now or already) completed
    extracted_text     : validated text on success
    word_count         : words in extracted_text
    error              : message stored as text_extraction_error (or reported)
    error_kind         : ErrorKind tag on failure
    processing_time_ms : wall time of this call
    cached             : True when the completed fast path was taken
    """
    material_id:        UUID
    success:            bool
    extracted_text:     str | None = None
    word_count:         int = 0
    error:              str | None = None
    error_kind:         ErrorKind | None = None
    processing_time_ms: int = 0
    cached:             bool = False

    @property
    def claimed_elsewhere(self) -> bool:
        return self.error_kind is ErrorKind.CONFLICT


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class MaterialProcessor:
    """
    Drives one material through extraction and validation.

    Constructor args:
        store      : MaterialStore (claim + terminal writes)
        registry   : ExtractorRegistry
        min_chars  : validator character threshold
        min_words  : validator word threshold
        stale_after_seconds : age at which a manual trigger may re-claim a
                     record stuck in processing
        clock      : returns an aware UTC datetime; injectable for tests
    """

    def __init__(
        self,
        store:     MaterialStore,
        registry:  ExtractorRegistry,
        min_chars: int = MIN_TEXT_CHARS,
        min_words: int = MIN_WORD_COUNT,
        clock:     Callable[[], datetime] = _utcnow,
        stale_after_seconds: int = 1800,
    ) -> None:
        self._store     = store
        self._registry  = registry
        self._min_chars = min_chars
        self._min_words = min_words
        self._clock     = clock
        self._stale_after = timedelta(seconds=stale_after_seconds)

    async def process(self, material_id: UUID, manual: bool = False) -> ProcessingOutcome:
        """
        Run one processing pass.

        manual=False : scheduled sweep, claims only pending records
        manual=True  : explicit re-trigger, may re-enter a failed record or a
                       stale processing record
        """
        t0 = time.monotonic()

        def _elapsed() -> int:
            return int((time.monotonic() - t0) * 1000)

        # ── Step 1: Load ─────────────────────────────────────────────────
        try:
            material = await self._store.get(material_id)
        except Exception as exc:
            logger.exception("Material lookup failed | material=%s", material_id)
            return ProcessingOutcome(
                material_id=material_id,
                success=False,
                error=f"{FAILURE_PREFIX}: {exc}",
                error_kind=ErrorKind.PERSISTENCE,
                processing_time_ms=_elapsed(),
            )

        if material is None:
            return ProcessingOutcome(
                material_id=material_id,
                success=False,
                error="Curriculum material not found",
                error_kind=ErrorKind.NOT_FOUND,
                processing_time_ms=_elapsed(),
            )

        # ── Step 2: Completed fast path ──────────────────────────────────
        if material.processing_status is MaterialStatus.COMPLETED:
            text = material.extracted_text or ""
            return ProcessingOutcome(
                material_id=material_id,
                success=True,
                extracted_text=text,
                word_count=count_words(text),
                processing_time_ms=_elapsed(),
                cached=True,
            )

        # ── Step 3: Atomic claim ─────────────────────────────────────────
        now = self._clock()
        if manual:
            from_statuses, stale_before = _MANUAL_CLAIM, now - self._stale_after
        else:
            from_statuses, stale_before = _SCHEDULED_CLAIM, None
        try:
            claimed = await self._store.claim(material_id, from_statuses, now, stale_before)
        except Exception as exc:
            logger.exception("Claim failed | material=%s", material_id)
            return ProcessingOutcome(
                material_id=material_id,
                success=False,
                error=f"{FAILURE_PREFIX}: {exc}",
                error_kind=ErrorKind.PERSISTENCE,
                processing_time_ms=_elapsed(),
            )

        if not claimed:
            logger.info(
                "Claim lost, skipping | material=%s observed_status=%s",
                material_id, material.processing_status.value,
            )
            return ProcessingOutcome(
                material_id=material_id,
                success=False,
                error="Curriculum material is already being processed",
                error_kind=ErrorKind.CONFLICT,
                processing_time_ms=_elapsed(),
            )

        logger.info(
            "Processing | material=%s type=%s manual=%s",
            material_id, material.file_type, manual,
        )

        # ── Steps 4-5: Extract → normalize → validate → persist ──────────
        try:
            raw_text = await asyncio.to_thread(
                self._registry.extract, material.file_path, material.file_type,
            )
            clean_text = normalize(raw_text)
            validation = validate(clean_text, self._min_chars, self._min_words)

            if not validation.is_valid:
                await self._store.mark_failed(material_id, validation.reason, self._clock())
                outcome = ProcessingOutcome(
                    material_id=material_id,
                    success=False,
                    word_count=validation.word_count,
                    error=validation.reason,
                    error_kind=ErrorKind.VALIDATION,
                    processing_time_ms=_elapsed(),
                )
            else:
                await self._store.mark_completed(material_id, clean_text, self._clock())
                outcome = ProcessingOutcome(
                    material_id=material_id,
                    success=True,
                    extracted_text=clean_text,
                    word_count=validation.word_count,
                    processing_time_ms=_elapsed(),
                )
        except Exception as exc:
            # ── Step 6: Fallback failure status ──────────────────────────
            message = f"{FAILURE_PREFIX}: {exc}"
            kind = exc.kind if isinstance(exc, PipelineError) else ErrorKind.EXTRACTION
            logger.error("Processing failed | material=%s error=%s", material_id, exc,
                         exc_info=not isinstance(exc, PipelineError))
            await self._mark_failed_best_effort(material_id, message)
            outcome = ProcessingOutcome(
                material_id=material_id,
                success=False,
                error=message,
                error_kind=kind,
                processing_time_ms=_elapsed(),
            )

        if outcome.success:
            logger.info(
                "Processed | material=%s words=%d elapsed_ms=%d",
                material_id, outcome.word_count, outcome.processing_time_ms,
            )
        else:
            logger.warning(
                "Processing rejected | material=%s kind=%s reason=%s",
                material_id, outcome.error_kind.value, outcome.error,
            )

        # ── Step 7: Processing log ───────────────────────────────────────
        await self._log_best_effort(outcome)
        return outcome

    # ------------------------------------------------------------------
    # Best-effort writes
    # ------------------------------------------------------------------

    async def _mark_failed_best_effort(self, material_id: UUID, message: str) -> None:
        try:
            await self._store.mark_failed(material_id, message, self._clock())
        except Exception as exc:
            logger.error(
                "Failed to record failure status | material=%s error=%s",
                material_id, exc, exc_info=True,
            )

    async def _log_best_effort(self, outcome: ProcessingOutcome) -> None:
        try:
            await self._store.log_processing(ProcessingLogEntry(
                material_id=outcome.material_id,
                action="process",
                status="success" if outcome.success else "failed",
                error_message=outcome.error,
                processing_time_ms=outcome.processing_time_ms,
            ))
        except Exception as exc:
            logger.warning(
                "Processing log write failed (non-fatal) | material=%s error=%s",
                outcome.material_id, exc,
            )
