"""Request tracing for the FM readiness API: request ids, timing headers, access log."""
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from fm_readiness.config import SLOW_REQUEST_MS

logger = logging.getLogger("fm-readiness-api.middleware")

# Polled by probes and scrapers; logging them would drown audit traffic
SKIP_LOG_PATHS = {"/health", "/metrics"}
REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time"


def access_log_level(status_code: int, duration_ms: float, slow_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if duration_ms >= slow_ms:
        return logging.WARNING
    return logging.INFO


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id (the caller's X-Request-ID when sent) and
    reports its duration in milliseconds as X-Process-Time.

    The access line is INFO normally, WARNING for audits slower than
    ``slow_request_ms`` and ERROR for 5xx responses.
    """

    def __init__(self, app, slow_request_ms: float = SLOW_REQUEST_MS):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[PROCESS_TIME_HEADER] = str(elapsed_ms)

        path = request.url.path
        if path not in SKIP_LOG_PATHS:
            logger.log(
                access_log_level(response.status_code, elapsed_ms, self.slow_request_ms),
                f"{request.method} {path} -> {response.status_code}",
                extra={
                    "http_method": request.method,
                    "http_path": path,
                    "http_status": response.status_code,
                    "request_id": request_id,
                    "duration_ms": elapsed_ms,
                },
            )
        return response
