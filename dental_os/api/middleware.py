"""API middleware for request logging."""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with its status and duration.

    Echoes ``X-Request-ID`` (or assigns one) so booking log lines can be
    matched to the call that produced them.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} status={response.status_code} "
            f"duration={duration:.3f}s request_id={request_id} "
            f"client={request.client.host if request.client else 'unknown'}",
        )

        response.headers["X-Process-Time"] = f"{duration:.3f}"
        response.headers["X-Request-ID"] = request_id
        return response
