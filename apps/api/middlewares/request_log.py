"""Request logging middleware for API."""

import logging
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)


async def logging_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Log each request with a request id and echo the id back in X-Request-ID."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    logger.info(f"[REQ {request_id}] {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"[REQ {request_id}] Unhandled error")
        raise

    logger.info(f"[REQ {request_id}] {response.status_code}")
    response.headers["X-Request-ID"] = request_id
    return response
