from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from spec_flow.errors import WorkflowError
from spec_flow.graphs.state import SessionState
from spec_flow.orchestrator.engine import WorkflowEngine
from spec_flow.resilience.circuit_breaker import CircuitBreaker
from spec_flow.resilience.retry import RetryPolicy, with_adaptive_retries

logger = logging.getLogger(__name__)


class WorkflowService:
    """
    Resilient entry point: circuit breaker -> adaptive retry -> engine.

    The breaker counts a whole invocation (after retries) as one outcome.
    Every retry attempt reloads the checkpoint, failed attempts persist nothing.
    """

    def __init__(
        self,
        *,
        engine: WorkflowEngine,
        breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.engine = engine
        self.breaker = breaker or CircuitBreaker(failure_threshold=5, reset_timeout_s=60.0, half_open_attempts=2)
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3)
        self._retries = 0

    async def run(self, session_id: str, user_input: str) -> SessionState:
        return await self._guarded("run", session_id, lambda: self.engine.run_workflow(session_id, user_input))

    async def continue_(self, session_id: str, user_input: str) -> SessionState:
        return await self._guarded(
            "continue", session_id, lambda: self.engine.continue_workflow(session_id, user_input)
        )

    async def get_state(self, session_id: str) -> Optional[SessionState]:
        return await self.engine.get_state(session_id)

    async def _guarded(
        self,
        mode: str,
        session_id: str,
        fn: Callable[[], Awaitable[SessionState]],
    ) -> SessionState:
        def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:  # noqa: ARG001
            self._retries += 1

        async def _attempts() -> SessionState:
            return await with_adaptive_retries(fn, policy=self.retry_policy, on_retry=_on_retry)

        try:
            return await self.breaker.call(_attempts)
        except WorkflowError:
            raise
        except Exception as e:
            logger.error(
                json.dumps(
                    {
                        "event": "workflow_failed",
                        "mode": mode,
                        "session_id": session_id,
                        "error_type": type(e).__name__,
                        "error": str(e),
                        "breaker_state": self.breaker.state.value,
                    },
                    ensure_ascii=False,
                )
            )
            raise WorkflowError(f"Workflow {mode} failed: {e}", code="workflow_failed") from e

    def get_stats(self) -> Dict[str, Any]:
        return {"breaker": self.breaker.get_stats(), "retries": self._retries}
