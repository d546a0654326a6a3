from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from spec_flow.graphs.state import DevPlan, MvpSummary, SessionState, Stage
from spec_flow.nodes.base import StageNode, profile_json, summary_json
from spec_flow.nodes.schemas import MvpPlan
from spec_flow.registry.prompts import PromptType

FALLBACK_RESPONSE = "The MVP scope is set to the core features collected so far. Generating the document next."


def format_mvp_message(plan: MvpPlan) -> str:
    lines = ["**MVP scope**", *[f"- {f}" for f in plan.mvp_features]]
    if plan.future_features:
        lines += ["", "**Later (non-goals for the MVP)**", *[f"- {f}" for f in plan.future_features]]
    if plan.dev_plan is not None:
        lines += ["", f"Estimated complexity: {plan.dev_plan.estimated_complexity}"]
    if plan.recommendation:
        lines += ["", plan.recommendation]
    return "\n".join(lines)


@dataclass
class MvpBoundaryNode(StageNode):
    node_name = "mvp_boundary"

    async def __call__(self, state: SessionState) -> Dict[str, Any]:
        self._log("node_start", state)
        user_message = f"Requirement profile:\n{profile_json(state)}\n\nDecisions so far:\n{summary_json(state)}"
        try:
            system_prompt = self.prompt_repo.get_prompt(PromptType.MVP)
            plan: MvpPlan = await self.llm.call_json(
                system_prompt,
                user_message,
                agent_type="mvp",
                schema=MvpPlan,
                session_id=state.session_id,
            )
        except Exception as e:
            self._degraded(state, e)
            return {
                "response": FALLBACK_RESPONSE,
                "options": None,
                "current_stage": Stage.DOCUMENT_GENERATION,
                "need_more_info": False,
            }

        dev_plan = DevPlan(**plan.dev_plan.model_dump()) if plan.dev_plan is not None else None
        summary = MvpSummary(mvp_features=plan.mvp_features, non_goals=plan.future_features, dev_plan=dev_plan)
        self._log("node_done", state, mvp_features=len(plan.mvp_features))
        return {
            "summary": {Stage.MVP_BOUNDARY: summary},
            "analyzed_stages": [Stage.MVP_BOUNDARY],
            "response": format_mvp_message(plan),
            "options": None,
            "current_stage": Stage.MVP_BOUNDARY,
            "need_more_info": False,
        }
