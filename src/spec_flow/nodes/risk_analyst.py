from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from spec_flow.graphs.state import OptionChip, RiskSummary, SessionState, SolutionOption, Stage
from spec_flow.nodes.base import StageNode, profile_json
from spec_flow.nodes.schemas import RiskAnalysis
from spec_flow.registry.prompts import PromptType

FALLBACK_RESPONSE = "Risk analysis is done. We suggest a robust, conventional approach and move on to the technology stack."


def format_risk_message(analysis: RiskAnalysis) -> str:
    lines = ["Here are the main risks I see for this product:", ""]
    for i, risk in enumerate(analysis.risks, start=1):
        line = f"{i}. **{risk.category}** ({risk.severity}): {risk.description}"
        if risk.mitigation:
            line += f" Mitigation: {risk.mitigation}"
        lines.append(line)
    if analysis.solutions:
        lines += ["", "Please choose one of the approaches below."]
    if analysis.recommended_solution:
        lines.append(f"Recommended: {analysis.recommended_solution}. {analysis.reasoning}".strip())
    return "\n".join(lines)


@dataclass
class RiskAnalystNode(StageNode):
    node_name = "risk_analyst"

    async def __call__(self, state: SessionState) -> Dict[str, Any]:
        self._log("node_start", state)
        user_message = f"Requirement profile:\n{profile_json(state)}"
        try:
            system_prompt = self.prompt_repo.get_prompt(PromptType.RISK)
            analysis: RiskAnalysis = await self.llm.call_json(
                system_prompt,
                user_message,
                agent_type="risk",
                schema=RiskAnalysis,
                session_id=state.session_id,
            )
            if not analysis.risks:
                raise ValueError("Risk analysis returned no risks")
        except Exception as e:
            self._degraded(state, e)
            return {
                "response": FALLBACK_RESPONSE,
                "options": None,
                "current_stage": Stage.TECH_STACK,
                "need_more_info": False,
            }

        summary = RiskSummary(
            risks=[f"{r.category}: {r.description}" for r in analysis.risks],
            solutions=[SolutionOption(**s.model_dump()) for s in analysis.solutions],
            selected_approach="",
        )
        options = [OptionChip(id=s.id, label=s.name, value=s.id) for s in analysis.solutions] or None
        self._step(state, {"risks": len(analysis.risks), "solutions": len(analysis.solutions)})
        self._log("node_done", state, risks=len(analysis.risks), solutions=len(analysis.solutions))
        return {
            "summary": {Stage.RISK_ANALYSIS: summary},
            "analyzed_stages": [Stage.RISK_ANALYSIS],
            "response": format_risk_message(analysis),
            "options": options,
            "current_stage": Stage.RISK_ANALYSIS,
            "need_more_info": True,
        }
