"""
Curriculum Processing API Router
Prefix: /api/v1/curriculum

  GET  /{material_id}/status               status query
  POST /{material_id}/process              manual (re-)processing
  POST /process-pending                    one batch sweep, for operational tooling
  POST /{material_id}/generate-assignment  material-based assessment generation
  POST /generate-from-text                 direct-text assessment generation
  POST /{material_id}/analyze              AI summary, outline, topics and objectives

Failures are raised as PipelineError subclasses and rendered by the
application-level handler (see main.py) as a structured ErrorResponse with
the status code mapped from the error's ErrorKind.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from curriculum_pipeline.generation.gateway import GenerationGateway
from curriculum_pipeline.generation.schemas import (
    AnalysisOptions,
    CurriculumAnalysis,
    DirectGenerationRequest,
    GenerationConfig,
    GenerationResult,
)
from curriculum_pipeline.schemas.curriculum import (
    ErrorResponse,
    ManualProcessingResponse,
    MaterialStatusResponse,
    SweepResponse,
)
from curriculum_pipeline.services.curriculum import CurriculumService
from curriculum_pipeline.services.pipeline import (
    get_generation_gateway,
    get_material_store,
    get_processor,
    get_scheduler,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/curriculum",
    tags=["Curriculum Processing"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_curriculum_service() -> CurriculumService:
    return CurriculumService(
        store=get_material_store(),
        processor=get_processor(),
        scheduler=get_scheduler(),
    )


def get_gateway() -> GenerationGateway:
    return get_generation_gateway()


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------

@router.get(
    "/{material_id}/status",
    response_model=MaterialStatusResponse,
    summary="Poll curriculum processing status",
    responses={
        404: {"model": ErrorResponse},
    },
)
async def get_material_status(
    material_id: UUID,
    service:     CurriculumService = Depends(get_curriculum_service),
) -> MaterialStatusResponse:
    return await service.get_status(material_id)


@router.post(
    "/{material_id}/process",
    response_model=ManualProcessingResponse,
    summary="Process (or re-process) one curriculum file now",
    description=(
        "Runs extraction synchronously. A completed material returns its stored "
        "text length without re-extraction; a failed material is re-entered."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Material or file not found"},
        409: {"model": ErrorResponse, "description": "Material is already being processed"},
        415: {"model": ErrorResponse, "description": "No extractor for the file type"},
        422: {"model": ErrorResponse, "description": "Extraction failed or content too thin"},
        500: {"model": ErrorResponse},
    },
)
async def process_material(
    material_id: UUID,
    service:     CurriculumService = Depends(get_curriculum_service),
) -> ManualProcessingResponse:
    return await service.trigger_processing(material_id)


@router.post(
    "/process-pending",
    response_model=SweepResponse,
    summary="Run one batch sweep over pending materials",
    description=(
        "Processes up to the configured batch size of pending materials. "
        "If a sweep is already running the call returns immediately with "
        "sweep_in_progress=true."
    ),
)
async def process_pending(
    service: CurriculumService = Depends(get_curriculum_service),
) -> SweepResponse:
    return await service.run_batch_sweep()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

@router.post(
    "/{material_id}/generate-assignment",
    response_model=GenerationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a draft assignment from processed curriculum",
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Curriculum has not been processed yet"},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse, "description": "Generation service failed"},
    },
)
async def generate_assignment(
    material_id: UUID,
    config:      GenerationConfig,
    gateway:     GenerationGateway = Depends(get_gateway),
) -> GenerationResult:
    return await gateway.generate_from_material(material_id, config)


@router.post(
    "/generate-from-text",
    response_model=GenerationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a draft assignment from topic text",
    responses={
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def generate_from_text(
    request: DirectGenerationRequest,
    gateway: GenerationGateway = Depends(get_gateway),
) -> GenerationResult:
    return await gateway.generate_from_text(request)


@router.post(
    "/{material_id}/analyze",
    response_model=CurriculumAnalysis,
    summary="Analyze processed curriculum and store the result on the material",
    description=(
        "Sends the validated text to the generation service for a summary, "
        "topic outline, concept list and learning objectives, and writes them "
        "to the material's ai_* columns."
    ),
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Curriculum has not been processed yet"},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse, "description": "Generation service failed"},
    },
)
async def analyze_material(
    material_id: UUID,
    options:     AnalysisOptions | None = None,
    gateway:     GenerationGateway = Depends(get_gateway),
) -> CurriculumAnalysis:
    return await gateway.analyze_material(material_id, options or AnalysisOptions())
