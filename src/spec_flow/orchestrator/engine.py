from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from spec_flow.graphs.router import route
from spec_flow.graphs.state import SessionState
from spec_flow.storage.checkpoint import CheckpointStore

logger = logging.getLogger(__name__)

COMPLETED_RESPONSE = "This session is complete. Start a new session to write another specification."

__all__ = ["WorkflowEngine", "route"]


class WorkflowEngine:
    """
    One graph invocation per user turn:
    load (or create) state -> append user message -> run graph -> append reply -> persist.
    """

    def __init__(self, *, graph: Any, checkpoints: CheckpointStore, telemetry: Any | None = None):
        self.graph = graph
        self.checkpoints = checkpoints
        self.telemetry = telemetry

    async def get_state(self, session_id: str) -> Optional[SessionState]:
        return await self.checkpoints.get(session_id)

    async def run_workflow(self, session_id: str, user_input: str) -> SessionState:
        return await self._invoke(SessionState.new(session_id), user_input, mode="run")

    async def continue_workflow(self, session_id: str, user_input: str) -> SessionState:
        state = await self.checkpoints.get(session_id)
        if state is None:
            return await self.run_workflow(session_id, user_input)
        if state.stop:
            # stop необратим: граф больше не запускаем, но ход сохраняем
            self._begin_turn(state, user_input)
            state.response = COMPLETED_RESPONSE
            state.messages = [*state.messages, {"role": "assistant", "content": COMPLETED_RESPONSE}]
            await self.checkpoints.put(state.session_id, state)
            logger.info(json.dumps({"event": "workflow_closed_turn", "session_id": state.session_id}, ensure_ascii=False))
            return state
        return await self._invoke(state, user_input, mode="continue")

    @staticmethod
    def _begin_turn(state: SessionState, user_input: str) -> None:
        state.messages = [*state.messages, {"role": "user", "content": user_input}]
        state.user_input = user_input
        state.response = ""
        state.options = None
        state.metadata = {
            **state.metadata,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "turns": int(state.metadata.get("turns", 0)) + 1,
        }

    async def _invoke(self, state: SessionState, user_input: str, *, mode: str) -> SessionState:
        start = time.perf_counter()
        self._begin_turn(state, user_input)
        stage_before = state.current_stage

        out = await self.graph.ainvoke(state.to_channels())
        final = out if isinstance(out, SessionState) else SessionState.from_channels(out)
        final.session_id = final.session_id or state.session_id
        if final.response:
            final.messages = [*final.messages, {"role": "assistant", "content": final.response}]

        await self.checkpoints.put(final.session_id, final)

        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            json.dumps(
                {
                    "event": "workflow_done",
                    "mode": mode,
                    "session_id": final.session_id,
                    "stage_before": stage_before.name,
                    "stage_after": final.current_stage.name,
                    "completeness": final.completeness,
                    "need_more_info": final.need_more_info,
                    "stop": final.stop,
                    "latency_ms": latency_ms,
                },
                ensure_ascii=False,
            )
        )
        if self.telemetry:
            try:
                self.telemetry.event("workflow_done", {"session_id": final.session_id, "latency_ms": latency_ms})
            except Exception:
                pass
        return final
