"""
Process-wide wiring of the processing pipeline.

The API process and the Celery worker both build their collaborators here so
that a manual trigger and a scheduled sweep in the same process share one
store, one extractor registry (and its lazily loaded parser libraries) and
one scheduler lock.
"""

from __future__ import annotations

from functools import lru_cache

from curriculum_pipeline.core.config import settings
from curriculum_pipeline.generation.client import LangChainGenerationClient
from curriculum_pipeline.generation.gateway import GenerationGateway
from curriculum_pipeline.processing.extractors import ExtractorRegistry, build_default_registry
from curriculum_pipeline.processing.orchestrator import MaterialProcessor
from curriculum_pipeline.store.base import MaterialStore
from curriculum_pipeline.workers.scheduler import BatchScheduler


@lru_cache(maxsize=1)
def get_material_store() -> MaterialStore:
    from curriculum_pipeline.store.sql import SqlMaterialStore
    return SqlMaterialStore()


@lru_cache(maxsize=1)
def get_extractor_registry() -> ExtractorRegistry:
    return build_default_registry(settings.upload_root)


@lru_cache(maxsize=1)
def get_processor() -> MaterialProcessor:
    return MaterialProcessor(
        store=get_material_store(),
        registry=get_extractor_registry(),
        min_chars=settings.min_text_chars,
        min_words=settings.min_word_count,
        stale_after_seconds=settings.stale_processing_seconds,
    )


@lru_cache(maxsize=1)
def get_scheduler() -> BatchScheduler:
    return BatchScheduler(
        processor=get_processor(),
        store=get_material_store(),
        batch_size=settings.sweep_batch_size,
        interval_seconds=settings.sweep_interval_seconds,
    )


@lru_cache(maxsize=1)
def get_generation_gateway() -> GenerationGateway:
    return GenerationGateway(
        store=get_material_store(),
        client=LangChainGenerationClient(),
        min_chars=settings.min_text_chars,
        min_words=settings.min_word_count,
        max_text_chars=settings.generation_max_text_chars,
    )
