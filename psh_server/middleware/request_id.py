"""
Request ID tracking.

Each request gets an ID (taken from the X-Request-ID header or generated),
stored in a ContextVar so log records emitted while dispatching carry it.
"""

from __future__ import annotations

import contextvars
import logging
import uuid
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from fastapi import Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id",
    default=None,
)


def get_request_id() -> str | None:
    return request_id_var.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind a request ID for the lifetime of each request."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)

        quiet = request.url.path.startswith("/health")
        if not quiet:
            logger.info(
                "Request started",
                extra={"method": request.method, "path": request.url.path},
            )

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            if not quiet:
                logger.info("Request completed", extra={"status_code": response.status_code})
            return response
        finally:
            request_id_var.reset(token)
