"""Request context middleware: assigns a unique ID to every request.

A player fires several overlapping observation requests per minute, so
log lines from different requests interleave.  Every line emitted while
a request is being handled carries its request_id (a ContextVar read
by the handler filter in app.core.logging), and the ID is echoed in
X-Request-ID so a client can quote it when reporting a failed save.

ContextVar rather than threading.local: concurrent requests share one
thread under asyncio, and each task needs its own value.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import request_id_var

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(req_id)

        start = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "user_id": request.query_params.get("userId"),
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        request_id_var.reset(token)

        response.headers["X-Request-ID"] = req_id
        return response
