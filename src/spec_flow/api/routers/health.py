from fastapi import APIRouter, Depends

from spec_flow.api.deps import get_breaker
from spec_flow.api.schemas import HealthResponse
from spec_flow.resilience.circuit_breaker import CircuitBreaker, CircuitState

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(breaker: CircuitBreaker = Depends(get_breaker)) -> HealthResponse:
    state = breaker.state
    return HealthResponse(status="degraded" if state is CircuitState.OPEN else "ok", breaker_state=state.value)
