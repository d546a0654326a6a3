from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any, Dict


class LogTelemetry:
    """Node steps and workflow events as structured log lines, plus per-node counters."""

    def __init__(self, logger_name: str = "spec_flow.telemetry"):
        self._logger = logging.getLogger(logger_name)
        self.steps: Counter = Counter()
        self.errors: Counter = Counter()

    def log_step(self, *, trace_id: str | None, node: str, meta: dict):
        self.steps[node] += 1
        self._logger.debug(
            json.dumps({"event": "node_step", "session_id": trace_id, "node": node, "meta": meta}, ensure_ascii=False, default=str)
        )

    def event(self, name: str, payload: dict):
        self._logger.debug(json.dumps({"event": name, **payload}, ensure_ascii=False, default=str))

    def error(self, trace_id: str, exc: Exception):
        self.errors[type(exc).__name__] += 1
        self._logger.debug(
            json.dumps({"event": "node_error", "session_id": trace_id, "error_type": type(exc).__name__}, ensure_ascii=False)
        )

    def snapshot(self) -> Dict[str, Any]:
        return {"steps": dict(self.steps), "errors": dict(self.errors)}
