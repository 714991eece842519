"""
Request ID middleware for request correlation.

Generates or propagates a unique request ID for each request and binds it
into the structlog context so every log line of the request carries it.
"""
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 64


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that ensures every request has a unique request ID.

    Behavior:
    - If X-Request-ID header is present and well formed, use that value
    - Otherwise, generate a new UUID
    - Store the ID on request.state.request_id and in structlog contextvars
    - Return the ID in the X-Request-ID response header
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER)
        if not request_id or not self._is_valid_request_id(request_id):
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @staticmethod
    def _is_valid_request_id(request_id: str) -> bool:
        # Alphanumeric, hyphens and underscores only
        if len(request_id) > MAX_REQUEST_ID_LENGTH:
            return False
        return all(c.isalnum() or c in "-_" for c in request_id)


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")
