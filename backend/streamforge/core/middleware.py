"""HTTP middleware."""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from streamforge.core.logging import set_correlation_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind the request's correlation ID to every log record it produces."""

    CORRELATION_ID_HEADER = "X-Correlation-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(self.CORRELATION_ID_HEADER, str(uuid.uuid4()))
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers[self.CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            set_correlation_id(None)
