from __future__ import annotations

import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# пробы балансировщика не засоряют info-лог
_QUIET_PATHS = {"/v1/health"}


class TraceLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a trace id, emits one api_request record per call, echoes X-Trace-Id."""

    def __init__(self, app):
        super().__init__(app)
        self._logger = logging.getLogger(__name__)

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get("x-trace-id") or uuid4().hex
        request.state.trace_id = trace_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._emit(request, trace_id, started, status_code=500, failed=True)
            raise

        latency_ms = self._emit(request, trace_id, started, status_code=response.status_code, failed=False)
        response.headers["X-Trace-Id"] = trace_id
        response.headers["X-Response-Time-Ms"] = str(latency_ms)
        return response

    def _emit(self, request: Request, trace_id: str, started: float, *, status_code: int, failed: bool) -> int:
        latency_ms = int((time.perf_counter() - started) * 1000)
        record = {
            "event": "api_request",
            "trace_id": trace_id,
            "method": request.method,
            "path": request.url.path,
            "session_id": request.path_params.get("session_id"),
            "status_code": status_code,
            "latency_ms": latency_ms,
            "client_ip": request.client.host if request.client else None,
            "outcome": "error" if failed or status_code >= 500 else "success",
        }
        if failed:
            self._logger.error("api_request", extra=record)
        elif request.url.path in _QUIET_PATHS:
            self._logger.debug("api_request", extra=record)
        else:
            self._logger.info("api_request", extra=record)
        return latency_ms


def setup_middlewares(app) -> None:
    app.add_middleware(TraceLoggingMiddleware)
