"""Structured logging setup and request logging middleware."""

import logging
import time
import uuid
from typing import Callable, Dict, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from storebuilder.core.settings import get_settings

settings = get_settings()

REDACTED_HEADERS = frozenset({"authorization", "cookie", "x-api-key", "x-hosting-token"})


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route stdlib and structlog output through one JSON renderer.

    Request-scoped values bound with ``structlog.contextvars`` (request id,
    host) are merged into every structlog event.
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level or settings.log_level),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def client_ip(request: Request) -> str:
    """First hop of ``X-Forwarded-For``, then ``X-Real-IP``, then the peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def redact_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {
        key: "[REDACTED]" if key.lower() in REDACTED_HEADERS else value
        for key, value in headers.items()
    }


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request once it finishes.

    API traffic is logged at info level, or warning/error for 4xx/5xx.
    Store site traffic (responses carrying ``X-Store-Domain``) is logged at
    debug level with the store domain, since it dominates volume.
    Every response gets ``X-Request-ID`` and ``X-Process-Time``.
    """

    def __init__(self, app, logger_name: str = "storebuilder.http"):
        super().__init__(app)
        self.logger = structlog.get_logger(logger_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            host=request.headers.get("host", ""),
        )
        request.state.request_id = request_id

        fields = {
            "method": request.method,
            "host": request.headers.get("host", ""),
            "path": request.url.path,
            "client_ip": client_ip(request),
        }
        if settings.debug:
            fields["headers"] = redact_headers(dict(request.headers))

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                "HTTP request failed with exception",
                error_type=type(e).__name__,
                error_message=str(e),
                process_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
                **fields,
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "host")

        process_time = time.perf_counter() - start_time
        fields.update(
            request_id=request_id,
            status_code=response.status_code,
            process_time_ms=round(process_time * 1000, 2),
        )

        store_domain = response.headers.get("x-store-domain")
        if store_domain:
            self.logger.debug("Store site request", store=store_domain, **fields)
        elif response.status_code < 400:
            self.logger.info("HTTP request completed", **fields)
        elif response.status_code < 500:
            self.logger.warning("HTTP request completed with client error", **fields)
        else:
            self.logger.error("HTTP request completed with server error", **fields)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)
        return response
