"""
Generation Gateway — hand-off of validated text to the generation service
════════════════════════════════════════════════════════════════════════

Three entry points:

  generate_from_material(material_id, config)
      record must be completed with stored text
      ──► normalize + validate again ──► truncate ──► client.generate()
      ──► record usage + log (best-effort)

  generate_from_text(request)
      caller-built topic text (see build_topic_text), no material lookup
      ──► normalize + validate ──► truncate ──► client.generate()

  analyze_material(material_id, options)
      record must be completed with stored text
      ──► normalize + validate ──► truncate ──► client.analyze()
      ──► record_analysis() onto the material row ──► log (best-effort)

Text that fails validation never reaches the client. The gateway applies no
timeout or retry; GenerationError from the client goes straight back to the
caller. A failed record_analysis() write is raised as PersistenceError;
only usage counters and log rows are best-effort.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable
from uuid import UUID

from curriculum_pipeline.core.errors import (
    InsufficientContentError,
    MaterialNotReadyError,
    NotFoundError,
)
from curriculum_pipeline.generation.client import GenerationClient
from curriculum_pipeline.generation.schemas import (
    AnalysisOptions,
    CurriculumAnalysis,
    DirectGenerationRequest,
    GenerationConfig,
    GenerationRequest,
    GenerationResult,
)
from curriculum_pipeline.processing.normalizer import normalize
from curriculum_pipeline.processing.validator import MIN_TEXT_CHARS, MIN_WORD_COUNT, validate
from curriculum_pipeline.store.base import (
    MaterialRecord,
    MaterialStatus,
    MaterialStore,
    ProcessingLogEntry,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TEXT_CHARS = 15000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_topic_text(
    topic:       str,
    description: str | None = None,
    concepts:    Iterable[str] = (),
    objectives:  Iterable[str] = (),
) -> str:
    """
    Assemble the direct-text blob from topic metadata:

        Topic: <topic>
        Description: <description>

        Concepts:
        - <concept>

        Learning Objectives:
        - <objective>

    Missing sections are left out.
    """
    concepts   = [c.strip() for c in concepts if c and c.strip()]
    objectives = [o.strip() for o in objectives if o and o.strip()]

    parts = [
        f"Topic: {topic.strip()}",
        f"Description: {description.strip()}" if description and description.strip() else "",
        "\nConcepts:\n" + "\n".join(f"- {c}" for c in concepts) if concepts else "",
        "\nLearning Objectives:\n" + "\n".join(f"- {o}" for o in objectives) if objectives else "",
    ]
    return "\n".join(part for part in parts if part)


class GenerationGateway:
    """
    Constructor args:
        store          : MaterialStore (lookup, usage, analysis, log)
        client         : GenerationClient
        min_chars      : validator character threshold
        min_words      : validator word threshold
        max_text_chars : text is truncated to this many characters before hand-off
    """

    def __init__(
        self,
        store:          MaterialStore,
        client:         GenerationClient,
        min_chars:      int = MIN_TEXT_CHARS,
        min_words:      int = MIN_WORD_COUNT,
        max_text_chars: int = DEFAULT_MAX_TEXT_CHARS,
        clock:          Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store          = store
        self._client         = client
        self._min_chars      = min_chars
        self._min_words      = min_words
        self._max_text_chars = max_text_chars
        self._clock          = clock

    async def generate_from_material(
        self,
        material_id: UUID,
        config:      GenerationConfig,
    ) -> GenerationResult:
        material = await self._load_completed(material_id)

        text = self._prepare(material.extracted_text)
        request = GenerationRequest(
            curriculum_text = text,
            assignment_type = config.assignment_type,
            num_questions   = config.num_questions,
            difficulty      = config.difficulty,
            question_types  = config.question_types,
            class_id        = config.class_id,
            material_id     = material_id,
            title           = config.title,
            description     = config.description,
            total_points    = config.total_points,
            due_date        = config.due_date,
            time_limit      = config.time_limit,
        )

        t0 = time.monotonic()
        logger.info(
            "Generating from material | material=%s questions=%d difficulty=%s",
            material_id, config.num_questions, config.difficulty,
        )
        result = await self._client.generate(request)
        elapsed_ms = int((time.monotonic() - t0) * 1000)

        await self._record_usage_best_effort(material_id, elapsed_ms)
        return result

    async def generate_from_text(self, request: DirectGenerationRequest) -> GenerationResult:
        text = self._prepare(request.curriculum_text)
        logger.info(
            "Generating from text | class=%s chars=%d questions=%d",
            request.class_id, len(text), request.num_questions,
        )
        return await self._client.generate(GenerationRequest(
            curriculum_text = text,
            assignment_type = request.assignment_type,
            num_questions   = request.num_questions,
            difficulty      = request.difficulty,
            question_types  = request.question_types,
            class_id        = request.class_id,
        ))

    async def analyze_material(
        self,
        material_id: UUID,
        options:     AnalysisOptions,
    ) -> CurriculumAnalysis:
        material = await self._load_completed(material_id)
        text = self._prepare(material.extracted_text)

        t0 = time.monotonic()
        logger.info(
            "Analyzing material | material=%s chars=%d subject=%s",
            material_id, len(text), options.subject,
        )
        analysis = await self._client.analyze(text, options)
        elapsed_ms = int((time.monotonic() - t0) * 1000)

        await self._store.record_analysis(
            material_id,
            summary             = analysis.summary,
            outline             = analysis.outline.model_dump(),
            suggested_topics    = analysis.concepts,
            learning_objectives = analysis.objectives,
        )
        await self._log_best_effort(material_id, "analyze", elapsed_ms)
        return analysis

    async def _load_completed(self, material_id: UUID) -> MaterialRecord:
        material = await self._store.get(material_id)
        if material is None:
            raise NotFoundError("Curriculum material not found")

        if material.processing_status is not MaterialStatus.COMPLETED or not material.extracted_text:
            raise MaterialNotReadyError("Curriculum has not been processed yet")
        return material

    def _prepare(self, text: str) -> str:
        """Normalize, validate and truncate; raises InsufficientContentError."""
        clean_text = normalize(text)
        validation = validate(clean_text, self._min_chars, self._min_words)
        if not validation.is_valid:
            raise InsufficientContentError(validation.reason)
        return clean_text[: self._max_text_chars]

    async def _record_usage_best_effort(self, material_id: UUID, elapsed_ms: int) -> None:
        try:
            await self._store.record_usage(material_id, self._clock())
            await self._store.log_processing(ProcessingLogEntry(
                material_id=material_id,
                action="generate_assignment",
                status="success",
                processing_time_ms=elapsed_ms,
            ))
        except Exception as exc:
            logger.warning(
                "Usage tracking failed (non-fatal) | material=%s error=%s",
                material_id, exc,
            )

    async def _log_best_effort(self, material_id: UUID, action: str, elapsed_ms: int) -> None:
        try:
            await self._store.log_processing(ProcessingLogEntry(
                material_id=material_id,
                action=action,
                status="success",
                processing_time_ms=elapsed_ms,
            ))
        except Exception as exc:
            logger.warning(
                "Processing log write failed (non-fatal) | material=%s action=%s error=%s",
                material_id, action, exc,
            )
