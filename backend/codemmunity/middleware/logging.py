"""
Codemmunity Backend: Request Logging Middleware
=================================================

What:  One access-log line per API request: method, path, status, duration,
       request ID and the acting user from X-User-ID.
Who:   Applied to every request; logs to the `codemmunity.access` logger.
       Health probes and the interactive docs are not logged.

What we log vs what we DON'T log:
    ✅ Log: method, path, status, duration, request ID, actor, client address
    ❌ Don't log: request bodies (source code, comments), query strings
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from codemmunity.middleware.request_id import request_id_var

logger = logging.getLogger("codemmunity.access")

UNLOGGED_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})
ANONYMOUS = "-"


def status_log_level(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access log for the posts and comments API.

    Log level follows the status class: 5xx → ERROR, 4xx → WARNING,
    everything else → INFO. Likes and reads carry no actor and are logged
    as "-".
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._log(request, 500, started)
            raise

        self._log(request, response.status_code, started)
        return response

    @staticmethod
    def _log(request: Request, status: int, started: float) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        actor = (request.headers.get("X-User-ID") or "").strip() or ANONYMOUS
        client = request.client.host if request.client else "unknown"
        rid = getattr(request.state, "request_id", None) or request_id_var.get("")

        logger.log(
            status_log_level(status),
            "%s %s %d %.1fms actor=%s [%s] from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            actor,
            rid,
            client,
            extra={
                "request_id": rid,
                "actor": actor,
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
