from __future__ import annotations

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from spec_flow.api.errors import APIError
from spec_flow.errors import CircuitOpenError, WorkflowError
from spec_flow.secrets import SecretNotFoundError


def _error_response(request: Request, status_code: int, content: dict, headers: dict | None = None) -> JSONResponse:
    trace_id = getattr(request.state, "trace_id", None)
    response = JSONResponse(status_code=status_code, content={**content, "trace_id": trace_id})
    if trace_id:
        response.headers["X-Trace-Id"] = trace_id
    for key, value in (headers or {}).items():
        response.headers[key] = value
    return response


def register_exception_handlers(app) -> None:
    logger = logging.getLogger(__name__)

    @app.exception_handler(RequestValidationError)
    async def handle_validation(request: Request, exc: RequestValidationError):
        return _error_response(request, 422, {"error": "validation_error", "details": exc.errors()})

    @app.exception_handler(CircuitOpenError)
    async def handle_circuit_open(request: Request, exc: CircuitOpenError):
        retry_after = str(max(1, int(exc.retry_after_s)))
        return _error_response(
            request,
            exc.status_code,
            {"error": exc.code, "message": str(exc)},
            headers={"Retry-After": retry_after},
        )

    @app.exception_handler(WorkflowError)
    async def handle_workflow(request: Request, exc: WorkflowError):
        if exc.status_code >= 500:
            logger.warning(
                "workflow_error",
                extra={"trace_id": getattr(request.state, "trace_id", None), "code": exc.code},
            )
        return _error_response(request, exc.status_code, {"error": exc.code, "message": str(exc)})

    @app.exception_handler(APIError)
    async def handle_api_error(request: Request, exc: APIError):
        return _error_response(request, exc.status_code, {"error": exc.code, "message": str(exc)})

    @app.exception_handler(SecretNotFoundError)
    async def handle_missing_secret(request: Request, exc: SecretNotFoundError):  # noqa: ARG001
        return _error_response(request, 500, {"error": "missing_secret", "message": "LLM credentials are not configured"})

    @app.exception_handler(Exception)
    async def handle_unknown(request: Request, exc: Exception):  # noqa: ARG001
        trace_id = getattr(request.state, "trace_id", None)
        logger.exception("Unhandled error", extra={"trace_id": trace_id, "path": request.url.path})
        return _error_response(request, 500, {"error": "internal_error"})
