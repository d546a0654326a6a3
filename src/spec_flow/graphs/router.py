from __future__ import annotations

import json
import logging

from langgraph.graph import END

from spec_flow.graphs.state import SessionState, Stage

logger = logging.getLogger(__name__)

TERMINATE = END

# стадия -> (узел анализа, следующий узел после анализа)
_ANALYSIS_STAGES = {
    Stage.RISK_ANALYSIS: ("risk_analyst", "tech_advisor"),
    Stage.TECH_STACK: ("tech_advisor", "mvp_boundary"),
    Stage.MVP_BOUNDARY: ("mvp_boundary", "spec_generator"),
}

_TERMINAL_STAGES = {Stage.DIAGRAM_DESIGN, Stage.DOCUMENT_GENERATION, Stage.COMPLETED}


def _decide(state: SessionState) -> str:
    if state.stop:
        return TERMINATE

    stage = state.current_stage
    if stage in (Stage.INIT, Stage.REQUIREMENT_COLLECTION):
        return "asker" if state.need_more_info else "risk_analyst"

    if stage in _ANALYSIS_STAGES:
        analyzer, successor = _ANALYSIS_STAGES[stage]
        if not state.is_analyzed(stage):
            return analyzer
        if state.need_more_info:
            return TERMINATE
        return successor

    if stage in _TERMINAL_STAGES:
        return TERMINATE

    return "asker"


def route(state: SessionState) -> str:
    """Next node name, or TERMINATE. Pure: reads only stop, stage, need_more_info and completion flags."""
    decision = _decide(state)
    logger.info(
        json.dumps(
            {
                "event": "route_decision",
                "session_id": state.session_id,
                "stage": getattr(state.current_stage, "name", state.current_stage),
                "need_more_info": state.need_more_info,
                "stop": state.stop,
                "next": decision,
            },
            ensure_ascii=False,
        )
    )
    return decision


# все возможные исходы route, для add_conditional_edges
ROUTE_TARGETS = {
    "asker": "asker",
    "risk_analyst": "risk_analyst",
    "tech_advisor": "tech_advisor",
    "mvp_boundary": "mvp_boundary",
    "spec_generator": "spec_generator",
    TERMINATE: END,
}
