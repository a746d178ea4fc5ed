"""
Request logging middleware.
Logs every API call together with the FHIR version and validation mode it asked for.
"""
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

API_PATH_PREFIX = "/api/v1"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs method, path, headers of interest, status and duration."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)

        path = request.url.path
        if not path.startswith(API_PATH_PREFIX):
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %d (fhir_version=%s, mode=%s, client=%s) in %.1f ms",
            request.method,
            path,
            response.status_code,
            request.headers.get("X-FHIR-Version", "default"),
            request.headers.get("X-Validation-Mode", "extended"),
            request.client.host if request.client else None,
            elapsed_ms,
        )
        return response
