"""Correlation ID middleware."""

import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from climarisk_api.utils.metrics import http_requests

CORRELATION_HEADER = "x-correlation-id"

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    """Correlation ID of the request being handled, if any."""
    return _correlation_id.get()


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation ID that follows it into queued jobs."""

    async def dispatch(self, request: Request, call_next):
        """Process request with correlation ID."""
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = _correlation_id.set(correlation_id)
        status_code = 500
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
        finally:
            _correlation_id.reset(token)
            http_requests.labels(
                method=request.method,
                route=_route_label(request),
                status=str(status_code),
            ).inc()

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def _route_label(request: Request) -> str:
    # Label by route template; unmatched paths share one label
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"
