# jobpush/transport/http_app.py
"""
HTTP adapter between the hosting runtime and the trigger handlers.

The runtime (database change feed, Cloud Function shim, outbox relay...)
POSTs one request per ``jobs`` document change. The request is answered
with 200 once the handler has run, whether or not delivery succeeded, so
the runtime never redelivers an event because a push failed.

Endpoints:
- POST /triggers/jobs/created   - new job → worker fan-out
- POST /triggers/jobs/updated   - job changed → customer status push
- GET  /health                  - liveness
- GET  /ready                   - database readiness
- GET  /metrics                 - in-process counters (trigger token)
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.responses import JSONResponse

from jobpush.config import settings
from jobpush.core.constants import EVENT_JOB_CREATED, EVENT_JOB_UPDATED, JOBS_COLLECTION
from jobpush.core.handlers.registry import (
    ChangeEvent,
    TriggerContext,
    TriggerRegistry,
    build_default_registry,
)
from jobpush.core.ports import DocumentQuery, PushSender
from jobpush.infra.health_checks_async import (
    AsyncDatabaseHealthCheck,
    AsyncHealthChecker,
    PushSenderHealthCheck,
)
from jobpush.infra.logging_config import setup_logging, get_logger
from jobpush.infra.metrics import get_metrics_collector
from jobpush.transport.middleware import RequestIDMiddleware, RequestLoggingMiddleware
from jobpush.transport.schemas import JobCreatedIn, JobUpdatedIn, TriggerOut
from jobpush.transport.security import require_trigger_auth

setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_registry(request: Request) -> TriggerRegistry:
    return request.app.state.registry


def get_trigger_context(request: Request) -> TriggerContext:
    return request.app.state.trigger_context


def _event_id(request: Request, body_event_id: str | None) -> str | None:
    """Body field first, then the X-Event-ID header."""
    return body_event_id or getattr(request.state, "event_id", None)


async def _run_trigger(
    event: ChangeEvent,
    registry: TriggerRegistry,
    ctx: TriggerContext,
) -> TriggerOut:
    outcome = await registry.dispatch(event, ctx)
    return TriggerOut(kind=event.kind, **outcome.to_dict())


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(
    *,
    store: DocumentQuery | None = None,
    sender: PushSender | None = None,
    registry: TriggerRegistry | None = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Collaborators passed in are used as-is; anything omitted is built from
    settings at startup (Postgres document store, configured push sender).
    """

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        logger.info(f"Starting application: env={settings.app_env}")

        owns_pool = store is None
        checks = []

        if owns_pool:
            from jobpush.infra.db_async import init_pool
            from jobpush.infra.pg_document_store_async import AsyncPostgresDocumentStore

            await init_pool()
            active_store = AsyncPostgresDocumentStore()
            checks.append(AsyncDatabaseHealthCheck())
            logger.info("Database pool initialized")
        else:
            active_store = store

        if sender is None:
            from jobpush.infra.push_senders import get_push_sender
            active_sender = get_push_sender(settings)
        else:
            active_sender = sender

        if hasattr(active_sender, "is_configured"):
            checks.append(PushSenderHealthCheck(active_sender))

        fastapi_app.state.registry = registry or build_default_registry()
        fastapi_app.state.trigger_context = TriggerContext(store=active_store, sender=active_sender)
        fastapi_app.state.health_checker = AsyncHealthChecker(checks)

        logger.info(f"Push sender: {active_sender.name}")
        logger.info("Application startup complete")

        yield

        logger.info("Shutting down application")

        from jobpush.infra.http_client import close_all_sessions
        await close_all_sessions()

        if owns_pool:
            from jobpush.infra.db_async import close_pool
            await close_pool()

        logger.info("Application shutdown complete")

    fastapi_app = FastAPI(
        title="jobpush",
        description="Push notifications for job creation and status changes",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
    )

    fastapi_app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
    fastapi_app.add_middleware(RequestIDMiddleware)

    _add_exception_handlers(fastapi_app)
    _add_routes(fastapi_app)
    return fastapi_app


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _add_exception_handlers(fastapi_app: FastAPI) -> None:

    @fastapi_app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )

    @fastapi_app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
        )


# ============================================================================
# ROUTES
# ============================================================================

def _add_routes(fastapi_app: FastAPI) -> None:

    @fastapi_app.get("/health")
    def health():
        """Liveness - PUBLIC, minimal information."""
        return {"status": "healthy"}

    @fastapi_app.get("/ready")
    async def readiness(request: Request):
        """Readiness - PUBLIC, critical checks only."""
        result = await request.app.state.health_checker.run_checks(include_non_critical=False)

        if result["status"] == "unhealthy":
            return JSONResponse(status_code=503, content={"status": "unhealthy"})

        return {"status": "healthy"}

    @fastapi_app.get("/metrics", dependencies=[Depends(require_trigger_auth)])
    async def metrics(request: Request):
        collector = get_metrics_collector()
        health = await request.app.state.health_checker.run_checks(include_non_critical=True)
        return {**collector.get_metrics(), "health": health}

    @fastapi_app.post(
        "/triggers/jobs/created",
        response_model=TriggerOut,
        dependencies=[Depends(require_trigger_auth)],
    )
    async def job_created(
        request: Request,
        body: JobCreatedIn,
        registry: TriggerRegistry = Depends(get_registry),
        ctx: TriggerContext = Depends(get_trigger_context),
    ):
        event = ChangeEvent(
            kind=EVENT_JOB_CREATED,
            document_id=body.job_id,
            after=body.record,
            event_id=_event_id(request, body.event_id),
            collection=JOBS_COLLECTION,
        )
        return await _run_trigger(event, registry, ctx)

    @fastapi_app.post(
        "/triggers/jobs/updated",
        response_model=TriggerOut,
        dependencies=[Depends(require_trigger_auth)],
    )
    async def job_updated(
        request: Request,
        body: JobUpdatedIn,
        registry: TriggerRegistry = Depends(get_registry),
        ctx: TriggerContext = Depends(get_trigger_context),
    ):
        event = ChangeEvent(
            kind=EVENT_JOB_UPDATED,
            document_id=body.job_id,
            before=body.before,
            after=body.after,
            event_id=_event_id(request, body.event_id),
            collection=JOBS_COLLECTION,
        )
        return await _run_trigger(event, registry, ctx)


app = create_app()
