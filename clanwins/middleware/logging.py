"""
Request logging middleware.

Logs one line per HTTP request with its route template, community and
timing, and feeds the request metrics.
"""
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from clanwins.logging_config import get_logger
from clanwins.routes.metrics import track_request


log = get_logger(component="http")


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds request_id for the duration of the request, so service logs
    emitted while handling it carry the same id.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        start = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as e:
                log.error(
                    "request_failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                    error=str(e),
                )
                raise

            duration = time.perf_counter() - start

            # Routing fills in the matched route and its path params
            route = request.scope.get("route")
            endpoint = route.path if route is not None else request.url.path

            log.info(
                "request_completed",
                method=request.method,
                route=endpoint,
                community_id=request.path_params.get("community_id"),
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            track_request(request.method, endpoint, response.status_code, duration)

        response.headers["X-Request-ID"] = request_id
        return response
