"""
Curriculum Processing Service

Operational surface over the pipeline, shared by the HTTP routes and tooling:

  get_status(material_id)         status query contract
  trigger_processing(material_id) manual (re-)processing, raises on failure
  run_batch_sweep()               one scheduler sweep

Unlike the background sweep, these calls propagate structured errors
(PipelineError subclasses) straight to their caller.
"""

from __future__ import annotations

import logging
from uuid import UUID

from curriculum_pipeline.core.errors import (
    ErrorKind,
    MaterialBusyError,
    NotFoundError,
    ProcessingFailedError,
)
from curriculum_pipeline.processing.orchestrator import MaterialProcessor
from curriculum_pipeline.schemas.curriculum import (
    ManualProcessingResponse,
    MaterialStatusResponse,
    SweepResponse,
)
from curriculum_pipeline.store.base import MaterialStore
from curriculum_pipeline.workers.scheduler import BatchScheduler

logger = logging.getLogger(__name__)


class CurriculumService:
    """Stateless; one instance per request or per process."""

    def __init__(
        self,
        store:     MaterialStore,
        processor: MaterialProcessor,
        scheduler: BatchScheduler,
    ) -> None:
        self._store     = store
        self._processor = processor
        self._scheduler = scheduler

    async def get_status(self, material_id: UUID) -> MaterialStatusResponse:
        material = await self._store.get(material_id)
        if material is None:
            raise NotFoundError("Curriculum material not found")

        return MaterialStatusResponse(
            id=material.id,
            title=material.title,
            status=material.processing_status.value,
            has_extracted_text=material.has_extracted_text,
            error=material.text_extraction_error,
            processing_started_at=material.processing_started_at,
            processing_completed_at=material.processing_completed_at,
            has_analysis=material.ai_summary is not None,
        )

    async def trigger_processing(self, material_id: UUID) -> ManualProcessingResponse:
        outcome = await self._processor.process(material_id, manual=True)

        if outcome.success:
            return ManualProcessingResponse(
                extracted_text_length=len(outcome.extracted_text or ""),
                processing_time_ms=outcome.processing_time_ms,
            )

        logger.info(
            "Manual processing failed | material=%s kind=%s error=%s",
            material_id, outcome.error_kind.value, outcome.error,
        )
        if outcome.error_kind is ErrorKind.NOT_FOUND:
            raise NotFoundError(outcome.error)
        if outcome.error_kind is ErrorKind.CONFLICT:
            raise MaterialBusyError(outcome.error)
        raise ProcessingFailedError(outcome.error, outcome.error_kind)

    async def run_batch_sweep(self) -> SweepResponse:
        result = await self._scheduler.run_sweep()
        if result is None:
            return SweepResponse(sweep_in_progress=True)
        return SweepResponse(**result.to_dict())
