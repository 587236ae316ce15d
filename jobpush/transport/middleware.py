import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from jobpush.infra.logging_config import get_logger, LogContext

logger = get_logger(__name__)

# Set by the hosting runtime to its change-event id (redeliveries keep it)
EVENT_ID_HEADER = "X-Event-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with a request id and the triggering event id, if any"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        request.state.event_id = request.headers.get(EVENT_ID_HEADER)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log trigger calls with their request and event ids"""

    def __init__(self, app: ASGIApp, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled:
            return await call_next(request)

        log_ctx = LogContext(
            logger,
            request_id=getattr(request.state, "request_id", "unknown"),
            event_id=getattr(request.state, "event_id", None),
        )
        start_time = time.monotonic()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.monotonic() - start_time) * 1000
            log_ctx.error(
                f"Request failed: {request.method} {request.url.path} "
                f"error={exc.__class__.__name__} duration={duration_ms:.2f}ms",
                exc_info=True
            )
            raise

        duration_ms = (time.monotonic() - start_time) * 1000
        level_log = log_ctx.warning if response.status_code >= 400 else log_ctx.info
        level_log(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration_ms:.2f}ms"
        )
        return response
