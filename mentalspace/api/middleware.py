"""Request logging middleware."""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its status and latency.

    The caller's ``X-Request-ID`` is reused when present, otherwise one is
    generated; either way it is echoed on the response so audit rows and log
    lines for one booking can be correlated.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        started = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - started
        logger.info(
            "%s %s -> %d in %.3fs [client=%s request_id=%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            request.client.host if request.client else "unknown",
            request_id,
        )
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
