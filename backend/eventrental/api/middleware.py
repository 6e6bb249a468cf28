"""
Request middleware: correlation id, structlog context and per-route counts.

A caller-supplied X-Request-ID is kept so a reservation can be traced across
the gateway, the API and the notification worker.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from eventrental.core.logging import get_logger
from eventrental.core.metrics import http_requests

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _route_template(request: Request) -> str:
    # Templated path keeps metric cardinality bounded (/events/{event_id})
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                error=type(exc).__name__,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            http_requests.labels(method=request.method, route=_route_template(request), status="5xx").inc()
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        status_class = f"{response.status_code // 100}xx"
        http_requests.labels(method=request.method, route=_route_template(request), status=status_class).inc()

        log = logger.warning if response.status_code >= 500 else logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
