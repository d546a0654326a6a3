from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict

from spec_flow.graphs.state import OptionChip, SessionState, Stage, TechStack, TechStackSummary
from spec_flow.nodes.base import StageNode, profile_json
from spec_flow.nodes.schemas import TechAdvice
from spec_flow.registry.prompts import PromptType

FALLBACK_RESPONSE = "We suggest Next.js with Supabase: fast to ship, easy to grow. Let's define the MVP scope next."


def format_tech_message(advice: TechAdvice) -> str:
    lines = [f"Recommended direction: {advice.recommended_category or advice.options[0].category}.", ""]
    if advice.reasoning:
        lines += [advice.reasoning, ""]
    for option in advice.options:
        mark = " (recommended)" if option.recommended else ""
        stack = ", ".join(f"{k}: {v}" for k, v in option.stack.model_dump(exclude_none=True).items())
        lines.append(f"- **{option.label}**{mark}: {stack}")
    lines += ["", "Pick the stack you prefer."]
    return "\n".join(lines)


@dataclass
class TechAdvisorNode(StageNode):
    node_name = "tech_advisor"

    async def __call__(self, state: SessionState) -> Dict[str, Any]:
        self._log("node_start", state)
        risk = state.summary_for(Stage.RISK_ANALYSIS)
        approach = risk.selected_approach if risk is not None and risk.selected_approach else "not selected"
        user_message = f"Requirement profile:\n{profile_json(state)}\n\nChosen approach: {approach}"
        try:
            system_prompt = self.prompt_repo.get_prompt(PromptType.TECH)
            advice: TechAdvice = await self.llm.call_json(
                system_prompt,
                user_message,
                agent_type="tech",
                schema=TechAdvice,
                session_id=state.session_id,
            )
        except Exception as e:
            self._degraded(state, e)
            return {
                "response": FALLBACK_RESPONSE,
                "options": None,
                "current_stage": Stage.MVP_BOUNDARY,
                "need_more_info": False,
            }

        first = advice.options[0]
        summary = TechStackSummary(
            tech_stack=TechStack(
                category=first.category or advice.recommended_category,
                frontend=first.stack.frontend,
                backend=first.stack.backend,
                database=first.stack.database,
                deployment=first.stack.deployment,
            ),
            reasoning=advice.reasoning,
        )
        options = [
            OptionChip(
                id=o.id,
                label=o.label,
                value=json.dumps({"category": o.category, **o.stack.model_dump(exclude_none=True)}, ensure_ascii=False),
            )
            for o in advice.options
        ]
        self._step(state, {"options": len(options)})
        self._log("node_done", state, options=len(options), category=advice.recommended_category)
        return {
            "summary": {Stage.TECH_STACK: summary},
            "analyzed_stages": [Stage.TECH_STACK],
            "response": format_tech_message(advice),
            "options": options,
            "current_stage": Stage.TECH_STACK,
            "need_more_info": True,
        }
