"""Structured logging for the API and the saga workers."""

import logging
import sys
import time
from collections.abc import Callable
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from medsaga.config import settings

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging(component: str = "api") -> None:
    """
    Configure structlog over stdlib logging.

    Args:
        component: Process role stamped on every event, e.g. ``api``,
            ``country_worker`` or ``completion_consumer``
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(component=component, env=settings.environment)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request id to every event logged while serving a request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        logger = structlog.get_logger()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        started = time.perf_counter()

        with structlog.contextvars.bound_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        ):
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    "request_failed",
                    error=str(e),
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
                raise

            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            log = logger.warning if response.status_code >= 500 else logger.info
            log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = str(duration_ms / 1000)
        return response
