import json
import logging
import time

from fastapi import APIRouter, Depends, Request

from spec_flow.api.deps import get_workflow_service
from spec_flow.api.errors import SessionNotFound
from spec_flow.api.schemas import (
    SessionResponse,
    WorkflowRequest,
    WorkflowResponse,
    state_to_response,
    state_to_session,
)
from spec_flow.orchestrator.service import WorkflowService
from spec_flow.utils.hashing import short_digest

router = APIRouter()


def _log_turn(request: Request, *, mode: str, payload: WorkflowRequest, status_code: int, result, start: float):
    logger = logging.getLogger(__name__)
    logger.info(
        json.dumps(
            {
                "event": "workflow_request",
                "trace_id": getattr(request.state, "trace_id", None),
                "mode": mode,
                "session_id": payload.session_id,
                "status_code": status_code,
                "input_chars": len(payload.message),
                "input_fingerprint": f"sha256:{short_digest(payload.message)}",
                "stage": result.current_stage.name if result is not None else None,
                "latency_ms_total": int((time.perf_counter() - start) * 1000),
            },
            ensure_ascii=False,
        )
    )


@router.post(
    "/workflow/run",
    response_model=WorkflowResponse,
    summary="Start a new requirements session",
    description=(
        "Example request:\n\n"
        "```\n"
        "curl -X POST http://localhost:8000/v1/workflow/run \\\n"
        "  -H 'Content-Type: application/json' \\\n"
        "  -d '{\"session_id\":\"s-1\",\"message\":\"I want to build a booking app for yoga studios\"}'\n"
        "```\n"
    ),
)
async def run_workflow(
    payload: WorkflowRequest,
    request: Request,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowResponse:
    start = time.perf_counter()
    status_code, result = 500, None
    try:
        result = await service.run(payload.session_id, payload.message)
        status_code = 200
        return state_to_response(result)
    finally:
        _log_turn(request, mode="run", payload=payload, status_code=status_code, result=result, start=start)


@router.post("/workflow/continue", response_model=WorkflowResponse, summary="Continue an existing session")
async def continue_workflow(
    payload: WorkflowRequest,
    request: Request,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowResponse:
    start = time.perf_counter()
    status_code, result = 500, None
    try:
        result = await service.continue_(payload.session_id, payload.message)
        status_code = 200
        return state_to_response(result)
    finally:
        _log_turn(request, mode="continue", payload=payload, status_code=status_code, result=result, start=start)


@router.get("/sessions/{session_id}", response_model=SessionResponse, summary="Persisted session state")
async def get_session(
    session_id: str,
    service: WorkflowService = Depends(get_workflow_service),
) -> SessionResponse:
    state = await service.get_state(session_id)
    if state is None:
        raise SessionNotFound(session_id)
    return state_to_session(state)
