"""
HTTP request middleware: correlation ids, timing and one log line per request.

Response headers added:
    X-Request-ID    echoed from the client, or generated
    X-Process-Time  handler time, e.g. ``3.2ms``

Probe and docs traffic is served without a log line. Websocket traffic
never passes through BaseHTTPMiddleware; the realtime router binds its
own connection id for logging.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from survivor_net.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

UNLOGGED_PATHS = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path
        client = request.client.host if request.client else "-"
        set_request_context(request_id=request_id, client_ip=client, method=request.method)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "%s %s failed after %.1fms", request.method, path, _elapsed_ms(start),
                extra={"endpoint": path, "status_code": 500, "duration_ms": _elapsed_ms(start)},
            )
            set_request_context()
            raise

        took = _elapsed_ms(start)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{took:.1f}ms"

        if not path.startswith(UNLOGGED_PATHS):
            logger.log(
                logging.WARNING if response.status_code >= 400 else logging.INFO,
                "%s %s -> %d [%s]", request.method, path, response.status_code, client,
                extra={"endpoint": path, "status_code": response.status_code, "duration_ms": took},
            )
        set_request_context()
        return response
