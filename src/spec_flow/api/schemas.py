from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from spec_flow.graphs.state import SessionState


class HealthResponse(BaseModel):
    status: str = "ok"
    breaker_state: str = Field("closed", description="Workflow circuit breaker state")


class WorkflowRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=128, description="Conversation thread id")
    message: str = Field(..., min_length=1, description="User input for this turn")


class OptionOut(BaseModel):
    id: str
    label: str
    value: str


class WorkflowResponse(BaseModel):
    session_id: str
    stage: str = Field(..., description="Current stage name")
    stage_ordinal: int
    response: str = Field("", description="Assistant reply for this turn")
    options: Optional[List[OptionOut]] = Field(None, description="Selectable answers, if any")
    need_more_info: bool
    completeness: int
    missing_fields: List[str] = Field(default_factory=list)
    stop: bool = False
    final_spec: Optional[str] = None


class SessionResponse(WorkflowResponse):
    profile: Dict[str, Any] = Field(default_factory=dict)
    summary: Dict[str, Any] = Field(default_factory=dict)
    messages: List[Dict[str, str]] = Field(default_factory=list)
    asked_questions: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CacheStatsResponse(BaseModel):
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    expired: int
    hit_rate: float
    by_agent: Dict[str, int] = Field(default_factory=dict)


class CacheInvalidateRequest(BaseModel):
    agent_type: Optional[str] = Field(None, description="Drop every entry produced by this agent")
    tags: Optional[List[str]] = Field(None, description="Drop entries carrying any of these tags")


class CacheInvalidateResponse(BaseModel):
    removed: int


def state_to_response(state: SessionState) -> WorkflowResponse:
    return WorkflowResponse(
        session_id=state.session_id,
        stage=state.current_stage.name,
        stage_ordinal=int(state.current_stage),
        response=state.response,
        options=[OptionOut(**o.model_dump()) for o in state.options] if state.options else None,
        need_more_info=state.need_more_info,
        completeness=state.completeness,
        missing_fields=list(state.missing_fields),
        stop=state.stop,
        final_spec=state.final_spec,
    )


def state_to_session(state: SessionState) -> SessionResponse:
    base = state_to_response(state).model_dump()
    return SessionResponse(
        **base,
        profile=dict(state.profile),
        summary={stage.name: s.model_dump() for stage, s in state.summary.items()},
        messages=[dict(m) for m in state.messages],
        asked_questions=list(state.asked_questions),
        metadata=dict(state.metadata),
    )
