"""
Observability middleware and logging setup.

Every request gets a correlation ID and one structured log line carrying
the storefront brand and actor when the caller sent them.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("tourfleet")

QUIET_PATHS = ("/health",)


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the project logger once."""
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        ))
        logger.addHandler(handler)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or uuid.uuid4().hex
        started = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"

        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "actor_id": request.headers.get("X-Actor-ID"),
        }

        if response.status_code >= 500:
            logger.error("Request failed", extra=log_data)
        elif response.status_code in (409, 410):
            # Lost races and expired holds are routine for storefronts
            logger.info("Request rejected", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("Request error", extra=log_data)
        elif request.url.path in QUIET_PATHS:
            logger.debug("Request", extra=log_data)
        else:
            logger.info("Request", extra=log_data)

        return response
