"""
Celery Tasks — Curriculum Processing

Task: sweep_pending_materials
  Beat-driven. Runs one BatchScheduler sweep (up to sweep_batch_size pending
  materials, sequentially). A tick that lands while a sweep is still running
  in this process is dropped.

Task: process_material
  Manual re-trigger off the request path. Same claim discipline as the
  sweep: a material another worker holds is reported as skipped.

Neither task retries: failed materials stay failed until re-triggered.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from curriculum_pipeline.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """
    Execute an async coroutine from a synchronous Celery task.

    Only loop acquisition falls back to asyncio.run(); an error raised by the
    coroutine itself propagates unchanged.
    """
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        return asyncio.run(coro)

    if loop.is_closed():
        return asyncio.run(coro)
    if loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()
    return loop.run_until_complete(coro)


async def _dispose_engine() -> None:
    """Pooled asyncpg connections are bound to the loop that opened them."""
    from curriculum_pipeline.db.session import engine
    await engine.dispose()


# ---------------------------------------------------------------------------
# Batch sweep: runs every sweep_interval_seconds via Celery Beat
# ---------------------------------------------------------------------------

@celery_app.task(
    name="curriculum_pipeline.workers.tasks.sweep_pending_materials",
    bind=False,
    acks_late=True,
)
def sweep_pending_materials() -> dict[str, Any]:
    return run_async(_sweep_pending_materials_async())


async def _sweep_pending_materials_async() -> dict[str, Any]:
    from curriculum_pipeline.services.pipeline import get_scheduler

    try:
        result = await get_scheduler().run_sweep()
    finally:
        await _dispose_engine()

    if result is None:
        return {"status": "skipped", "reason": "sweep_in_progress"}
    return {"status": "ok", **result.to_dict()}


# ---------------------------------------------------------------------------
# Manual re-trigger
# ---------------------------------------------------------------------------

@celery_app.task(
    name="curriculum_pipeline.workers.tasks.process_material",
    bind=False,
    acks_late=True,
)
def process_material(*, material_id: str) -> dict[str, Any]:
    return run_async(_process_material_async(uuid.UUID(material_id)))


async def _process_material_async(material_id: uuid.UUID) -> dict[str, Any]:
    from curriculum_pipeline.services.pipeline import get_processor

    try:
        outcome = await get_processor().process(material_id, manual=True)
    finally:
        await _dispose_engine()

    if outcome.success:
        return {
            "status":                "completed",
            "material_id":           str(material_id),
            "extracted_text_length": len(outcome.extracted_text or ""),
            "processing_time_ms":    outcome.processing_time_ms,
        }
    if outcome.claimed_elsewhere:
        return {"status": "skipped", "material_id": str(material_id)}
    return {
        "status":      "failed",
        "material_id": str(material_id),
        "error_kind":  outcome.error_kind.value,
        "error":       outcome.error,
    }


# ---------------------------------------------------------------------------
# Health check task
# ---------------------------------------------------------------------------

@celery_app.task(name="curriculum_pipeline.workers.tasks.health_check")
def health_check() -> dict[str, str]:
    return {"status": "ok", "worker": "healthy"}
