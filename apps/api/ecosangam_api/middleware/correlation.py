"""Correlation ID and request logging middleware."""

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "x-correlation-id"
UNLOGGED_PATHS = ("/health", "/ready", "/metrics")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation ID and log its outcome."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.monotonic()
        response: Response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id

        if not request.url.path.startswith(UNLOGGED_PATHS):
            logger.info(
                f"{request.method} {request.url.path} {response.status_code}",
                extra={
                    "correlation_id": correlation_id,
                    "duration_ms": round((time.monotonic() - started) * 1000, 1),
                },
            )
        return response
