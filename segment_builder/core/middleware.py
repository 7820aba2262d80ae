"""Request body limits for the filter API."""

import json
import logging
from collections.abc import Callable

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

_TOO_LARGE_BODY = json.dumps(
    {
        "error": "RequestTooLarge",
        "message": "Request body exceeds maximum allowed size",
        "details": {},
    }
)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Reject request bodies larger than ``max_size_mb`` with 413.

    Filters are small documents; anything bigger is refused before it reaches
    the JSON parser. Both the Content-Length header and the actual body are
    checked, so a missing or falsified header does not bypass the limit.
    """

    def __init__(self, app, max_size_mb: float = 1.0):
        super().__init__(app)
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    def _too_large(self, request: Request, size: int, source: str) -> Response:
        logger.warning(
            f"Request size {size} bytes ({source}) exceeds limit {self.max_size_bytes} bytes",
            extra={"path": request.url.path},
        )
        return Response(
            content=_TOO_LARGE_BODY,
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            media_type="application/json",
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            size = int(content_length)
            if size > self.max_size_bytes:
                return self._too_large(request, size, "from header")

        if request.method in ("POST", "PUT", "PATCH"):
            body = await request.body()
            if len(body) > self.max_size_bytes:
                return self._too_large(request, len(body), "actual")

            # The body has been consumed; replay it for downstream handlers
            async def receive():
                return {"type": "http.request", "body": body, "more_body": False}

            request._receive = receive

        return await call_next(request)
