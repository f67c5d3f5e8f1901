"""
Celery Application Factory

Drives the batch sweep when settings.scheduler_driver == "celery".
Broker: RabbitMQ (amqp://) in production; Redis (redis://) for local dev.
Result backend: Redis (optional — material state lives in PostgreSQL).

Queue topology:
  curriculum.processing  — sweep ticks and manual re-triggers, ONE worker
                           process (worker_concurrency=1) so records are
                           handled strictly one at a time
  system.health          — internal health-check tasks

Beat:
  sweep-pending-curriculum  every settings.sweep_interval_seconds; expires
                            after one interval so a backed-up queue never
                            replays stale ticks

Start:
  celery -A curriculum_pipeline.workers.celery_app worker -Q curriculum.processing,system.health
  celery -A curriculum_pipeline.workers.celery_app beat
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import after_setup_logger, task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from curriculum_pipeline.core.config import settings

logger = logging.getLogger(__name__)

PROCESSING_QUEUE = "curriculum.processing"

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

CURRICULUM_EXCHANGE = Exchange("curriculum", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        PROCESSING_QUEUE,
        exchange=CURRICULUM_EXCHANGE,
        routing_key=PROCESSING_QUEUE,
        durable=True,
    ),
    Queue(
        "system.health",
        Exchange("system", type="direct"),
        routing_key="system.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "curriculum_pipeline.workers.tasks.sweep_pending_materials": {"queue": PROCESSING_QUEUE},
    "curriculum_pipeline.workers.tasks.process_material":        {"queue": PROCESSING_QUEUE},
    "curriculum_pipeline.workers.tasks.health_check":            {"queue": "system.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("curriculum_pipeline")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue=PROCESSING_QUEUE,
        task_default_exchange="curriculum",
        task_default_routing_key=PROCESSING_QUEUE,

        # --- Reliability ---
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        # --- Result TTL ---
        result_expires=3600,

        # --- Timezone ---
        timezone="UTC",
        enable_utc=True,

        # --- Beat schedule (batch sweep) ---
        beat_schedule={
            "sweep-pending-curriculum": {
                "task":     "curriculum_pipeline.workers.tasks.sweep_pending_materials",
                "schedule": settings.sweep_interval_seconds,
                "options":  {
                    "queue":   PROCESSING_QUEUE,
                    "expires": settings.sweep_interval_seconds,
                },
            },
        },

        # --- Worker ---
        worker_concurrency=1,             # sequential processing bounds peak memory
        worker_max_tasks_per_child=200,   # recycle workers to release parser memory
    )

    app.autodiscover_tasks(["curriculum_pipeline.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals: structured task logging
# ---------------------------------------------------------------------------

@after_setup_logger.connect
def on_after_setup_logger(logger, *_, **__):
    logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s material=%s",
        task_id, task.name, kwargs.get("material_id", "-"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s material=%s",
        task_id, task.name, state, kwargs.get("material_id", "-"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s material=%s error=%s",
        task_id, (kwargs or {}).get("material_id", "-"), exception,
        exc_info=True,
    )
