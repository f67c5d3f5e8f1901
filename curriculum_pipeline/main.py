"""
Curriculum Pipeline: HTTP entry point

  /api/v1/curriculum/...   processing, status and generation routes
  /health                  liveness plus a database ping

Every response carries X-Request-ID (echoed from the request or minted here),
and every error is rendered as an ErrorResponse envelope. PipelineError
subclasses pick their status code through ERROR_KIND_MAP.

Sweep driver (settings.scheduler_driver):
  celery     beat + dedicated worker run the sweep (see workers/celery_app.py)
  inprocess  BatchScheduler.run_forever() runs inside this process's event loop
  disabled   no periodic sweep; POST /api/v1/curriculum/process-pending only
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from curriculum_pipeline import __version__
from curriculum_pipeline.api.v1.curriculum import router as curriculum_router
from curriculum_pipeline.core.config import settings
from curriculum_pipeline.core.errors import PipelineError
from curriculum_pipeline.db.session import check_db_health
from curriculum_pipeline.schemas.curriculum import (
    CurriculumErrors,
    ErrorDetail,
    ErrorResponse,
)

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

REQUEST_ID_HEADER = "X-Request-ID"


def _request_id(request: Request) -> str | None:
    return request.headers.get(REQUEST_ID_HEADER)


def _render(status_code: int, body: ErrorResponse, **kwargs) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), **kwargs)


# ---------------------------------------------------------------------------
# Lifespan: sweep loop + engine disposal
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: log the sweep configuration and, for the in-process driver,
    start BatchScheduler.run_forever() as a background task.
    Shutdown: let the running sweep finish, then dispose the engine pool.
    """
    logger.info(
        "Curriculum pipeline up | env=%s driver=%s interval=%ss cap=%d",
        settings.app_env, settings.scheduler_driver,
        settings.sweep_interval_seconds, settings.sweep_batch_size,
    )

    stop_sweeps = asyncio.Event()
    sweep_loop: asyncio.Task | None = None
    if settings.scheduler_driver == "inprocess":
        from curriculum_pipeline.services.pipeline import get_scheduler
        sweep_loop = asyncio.create_task(get_scheduler().run_forever(stop_sweeps))

    yield

    logger.info("Curriculum pipeline stopping | driver=%s", settings.scheduler_driver)
    if sweep_loop is not None:
        stop_sweeps.set()
        await sweep_loop

    from curriculum_pipeline.db.session import engine
    await engine.dispose()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

async def request_context(request: Request, call_next):
    """Stamp X-Request-ID on the response and log one line per request."""
    request_id = _request_id(request) or str(uuid.uuid4())
    started = time.perf_counter()

    response = await call_next(request)

    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "HTTP | method=%s path=%s status=%d elapsed_ms=%.1f request_id=%s",
        request.method, request.url.path, response.status_code,
        (time.perf_counter() - started) * 1000, request_id,
    )
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

async def handle_pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
    status_code, body = CurriculumErrors.from_pipeline_error(exc, _request_id(request))
    logger.info(
        "Request rejected | path=%s kind=%s status=%d message=%s",
        request.url.path, exc.kind.value, status_code, exc.message,
    )
    return _render(status_code, body)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [
        ErrorDetail(
            field=" → ".join(str(part) for part in problem["loc"]),
            message=problem["msg"],
            code="VALIDATION_ERROR",
        )
        for problem in exc.errors()
    ]
    body = ErrorResponse(
        error_code="VALIDATION_ERROR",
        message="Request validation failed.",
        details=problems,
        request_id=_request_id(request),
    )
    return _render(status.HTTP_422_UNPROCESSABLE_ENTITY, body)


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    """Last resort; the traceback goes to the log, never to the client."""
    request_id = _request_id(request) or str(uuid.uuid4())
    logger.exception("Unhandled error | path=%s request_id=%s", request.url.path, request_id)
    return _render(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        CurriculumErrors.internal_error(request_id),
        headers={REQUEST_ID_HEADER: request_id},
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    docs_enabled = not settings.is_production
    app = FastAPI(
        title="Curriculum Processing Pipeline",
        description=(
            "Extraction, validation and batch processing of uploaded curriculum "
            "documents, plus hand-off of validated text to assessment generation."
        ),
        version=__version__,
        docs_url="/api/docs" if docs_enabled else None,
        redoc_url="/api/redoc" if docs_enabled else None,
        openapi_url="/api/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    app.middleware("http")(request_context)

    app.add_exception_handler(PipelineError, handle_pipeline_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)

    app.include_router(curriculum_router, prefix="/api/v1")

    @app.get("/health", tags=["Operations"], summary="Liveness + database ping")
    async def health() -> JSONResponse:
        database = await check_db_health()
        healthy = database["status"] == "ok"
        return JSONResponse(
            status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ok" if healthy else "degraded",
                "service": "curriculum-pipeline",
                "scheduler_driver": settings.scheduler_driver,
                "database": database,
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "curriculum_pipeline.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
    )
