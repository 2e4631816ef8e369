"""
Request logging middleware. Logs method, path, status and duration.
Static image hits are logged at DEBUG; clients poll them constantly.
"""
import logging
import time
from typing import Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, quiet_prefixes: Tuple[str, ...] = ("/images",)):
        super().__init__(app)
        self.quiet_prefixes = quiet_prefixes

    def _level_for(self, path: str, status: int) -> int:
        if status >= 500:
            return logging.ERROR
        if status >= 400:
            return logging.WARNING
        if path.startswith(self.quiet_prefixes):
            return logging.DEBUG
        return logging.INFO

    async def dispatch(self, request: Request, call_next) -> Response:
        method = request.method
        path = request.scope.get("path", "")
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        status = response.status_code
        logger.log(
            self._level_for(path, status),
            "request_finished method=%s path=%s status=%s duration_ms=%.1f",
            method, path, status, duration_ms,
        )
        return response
