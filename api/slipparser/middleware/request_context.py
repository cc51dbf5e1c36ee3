"""
Middleware to add request context (request_id, timing) for structured logging.
"""

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..logging_config import log_with_context

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a request id to request.state and echo it as X-Request-ID."""

    async def dispatch(self, request: Request, call_next):
        # honour an incoming X-Request-ID
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        log_with_context(
            logger,
            logging.INFO,
            f"{request.method} {request.url.path} -> {response.status_code}",
            request_id=request_id,
            duration_ms=duration_ms,
        )
        return response
