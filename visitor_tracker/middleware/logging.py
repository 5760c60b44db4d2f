"""
Logging Middleware and Setup

Request/response logging for every HTTP call:
- Request method and path
- Response status code
- Request processing time
- Client IP address (the same one the tracker records)

WebSocket traffic is not wrapped; the realtime channel logs its own
subscribe/unsubscribe events.
"""

import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from visitor_tracker.core.setting import settings
from visitor_tracker.core.validators import get_client_ip

logger = logging.getLogger("visitor_tracker")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the package logger at the given level."""
    package_logger = logging.getLogger("visitor_tracker")
    package_logger.setLevel(level.upper())
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests and responses.

    Wraps the request/response cycle to add logging without modifying
    endpoint code. Background tasks run after the response is logged.
    """

    async def dispatch(self, request: Request, call_next):
        client_ip = get_client_ip(request, settings.TRUST_PROXY_HEADERS)

        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        # Format: METHOD PATH STATUS_CODE PROCESS_TIME_MS CLIENT_IP
        logger.info(
            f"{request.method} {request.url.path} "
            f"{response.status_code} {process_time*1000:.2f}ms "
            f"IP:{client_ip}"
        )

        response.headers["X-Process-Time"] = str(process_time)

        return response


def add_logging_middleware(app):
    """
    Add logging middleware to FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(LoggingMiddleware)
