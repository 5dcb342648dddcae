import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

log = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by load balancers; logged at debug so they do not bury real traffic
QUIET_PATHS = frozenset({"/health"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, with request and session ids bound for every log line."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_contextvars()

        # Reuse the caller's id so a request can be followed across services
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        bind_contextvars(
            request_id=request_id,
            http_method=request.method,
            path=request.url.path,
        )
        request.state.request_id = request_id

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            log.exception(
                "http_request_failed",
                elapsed_ms=_elapsed_ms(start_time),
                error=str(e),
            )
            raise

        # Set by SessionMiddleware further down the stack
        session_id = getattr(request.state, "session_id", None)
        if session_id:
            bind_contextvars(session_id=session_id[:8])

        emit = log.debug if request.url.path in QUIET_PATHS else log.info
        if response.status_code >= 500:
            emit = log.warning
        emit(
            "http_request",
            status_code=response.status_code,
            elapsed_ms=_elapsed_ms(start_time),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)
