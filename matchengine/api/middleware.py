import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from matchengine.common.logging import get_logger

logger = get_logger("api.middleware")

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = {"/health"}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Tags each call with a request id and logs its latency."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        log = logger.debug if request.url.path in QUIET_PATHS else logger.info
        log(
            "[%s] %s %s -> %d in %.1fms",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"
        return response
