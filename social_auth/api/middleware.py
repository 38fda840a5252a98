"""Middleware for request tracking and client metadata."""

from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from social_auth.models.auth import RequestMetadata


def client_metadata(request: Request) -> RequestMetadata:
    """IP and user agent of the caller, honoring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip_address = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip_address and request.client is not None:
        ip_address = request.client.host
    return RequestMetadata(
        ip_address=ip_address or "Unknown",
        user_agent=request.headers.get("User-Agent") or "Unknown",
    )


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation ID and client metadata.

    - Uses X-Correlation-Id from the request or generates a UUID4
    - Stores it and the client metadata on request.state
    - Binds the ID into structlog contextvars for all logs of the request
    - Echoes it back in the X-Correlation-Id response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get("X-Correlation-Id", str(uuid4()))

        request.state.correlation_id = correlation_id
        request.state.client_metadata = client_metadata(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        response = await call_next(request)
        response.headers["X-Correlation-Id"] = correlation_id

        return response
