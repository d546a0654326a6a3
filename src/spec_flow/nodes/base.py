from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict

from spec_flow.graphs.state import SessionState

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 5


@dataclass
class StageNode:
    llm: Any  # CachedLLM
    prompt_repo: Any
    telemetry: Any | None = None

    node_name: ClassVar[str] = "node"

    def _log(self, event: str, state: SessionState, **extra: Any) -> None:
        logger.info(
            json.dumps(
                {
                    "event": event,
                    "node": self.node_name,
                    "session_id": state.session_id,
                    "stage": state.current_stage.name,
                    **extra,
                },
                ensure_ascii=False,
                default=str,
            )
        )

    def _degraded(self, state: SessionState, exc: Exception, **extra: Any) -> None:
        logger.warning(
            json.dumps(
                {
                    "event": "node_degraded",
                    "node": self.node_name,
                    "session_id": state.session_id,
                    "stage": state.current_stage.name,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    **extra,
                },
                ensure_ascii=False,
            )
        )
        if self.telemetry:
            try:
                self.telemetry.error(state.session_id, exc)
            except Exception:
                # telemetry никогда не должна ломать выполнение
                pass

    def _step(self, state: SessionState, meta: Dict[str, Any]) -> None:
        if self.telemetry:
            try:
                self.telemetry.log_step(trace_id=state.session_id, node=self.node_name, meta=meta)
            except Exception:
                pass


def recent_history(state: SessionState, limit: int = HISTORY_WINDOW) -> list[dict]:
    messages = list(state.messages)
    # текущая реплика пользователя уходит отдельным user-сообщением
    if messages and messages[-1].get("role") == "user" and messages[-1].get("content") == state.user_input:
        messages = messages[:-1]
    return [dict(m) for m in messages[-limit:]]


def profile_json(state: SessionState) -> str:
    return json.dumps(state.profile, ensure_ascii=False, indent=2, default=str)


def summary_json(state: SessionState) -> str:
    data = {stage.name: summary.model_dump(exclude={"kind"}) for stage, summary in sorted(state.summary.items())}
    return json.dumps(data, ensure_ascii=False, indent=2, default=str)
