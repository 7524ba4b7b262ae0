import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from coupon_engine.core.logging_config import request_id_ctx_var

logger = logging.getLogger("coupon_engine.request")

REQUEST_ID_HEADER = "X-Request-ID"


def _request_id(request: Request) -> str:
    """Reuse the gateway's request id so coupon events correlate across services."""
    incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    return incoming[:64] or uuid.uuid4().hex


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id for the duration of the call and writes one access line per response."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = _request_id(request)
        token = request_id_ctx_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            logger.log(
                level,
                "request",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                    "user_id": request.headers.get("X-User-Id") or None,
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)
