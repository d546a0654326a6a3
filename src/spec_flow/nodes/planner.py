from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from spec_flow.graphs.state import (
    SessionState,
    Stage,
    missing_required_fields,
    strict_completeness,
)
from spec_flow.nodes.base import StageNode, profile_json, summary_json
from spec_flow.nodes.schemas import PlannerAssessment
from spec_flow.registry.prompts import PromptType

# после стольких вопросов двигаемся дальше, даже если профиль неполный
MAX_QUESTIONS = 5
FORCED_COMPLETENESS = 80


@dataclass
class PlannerNode(StageNode):
    """
    Decides whether the current stage has what it needs.

    Order of checks:
    1. stopped session or stage past MVP_BOUNDARY: nothing to plan;
    2. loop detection: MAX_QUESTIONS asked -> advance one stage unconditionally;
    3. required profile fields missing -> back to requirement collection;
    4. stage rules (LLM assessment is advisory and only recorded).
    """

    node_name = "planner"

    async def __call__(self, state: SessionState) -> Dict[str, Any]:
        stage = state.current_stage
        asked = len(state.asked_questions)
        self._log("node_start", state, asked_questions=asked)

        if state.stop or stage > Stage.MVP_BOUNDARY:
            return {}

        if asked >= MAX_QUESTIONS and stage < Stage.MVP_BOUNDARY:
            next_stage = stage.next()
            self._log("loop_detected", state, asked_questions=asked, next_stage=next_stage.name)
            return {
                "completeness": FORCED_COMPLETENESS,
                "need_more_info": False,
                "current_stage": next_stage,
            }

        missing = missing_required_fields(state.profile)
        completeness = strict_completeness(state.profile)
        if missing:
            self._log("node_done", state, completeness=completeness, missing=missing)
            return {
                "completeness": completeness,
                "missing_fields": missing,
                "need_more_info": True,
                "current_stage": Stage.REQUIREMENT_COLLECTION,
            }

        update: Dict[str, Any] = {"completeness": completeness, "missing_fields": [], "need_more_info": False}
        assessment = await self._assess(state)
        if assessment is not None:
            update["metadata"] = {"planner": assessment.model_dump()}

        if stage in (Stage.INIT, Stage.REQUIREMENT_COLLECTION):
            update["current_stage"] = Stage.RISK_ANALYSIS
        elif stage is Stage.RISK_ANALYSIS:
            risk = state.summary_for(Stage.RISK_ANALYSIS)
            if risk is not None and risk.selected_approach:
                update["current_stage"] = Stage.TECH_STACK
        elif stage is Stage.TECH_STACK:
            tech = state.summary_for(Stage.TECH_STACK)
            if tech is not None and tech.tech_stack is not None:
                update["current_stage"] = Stage.MVP_BOUNDARY

        self._step(state, {"completeness": completeness, "next_stage": update.get("current_stage", stage).name})
        self._log("node_done", state, completeness=completeness, next_stage=update.get("current_stage", stage).name)
        return update

    async def _assess(self, state: SessionState) -> PlannerAssessment | None:
        try:
            system_prompt = self.prompt_repo.get_prompt(PromptType.PLANNER)
            user_message = (
                f"Current stage: {state.current_stage.name}\n\n"
                f"Requirement profile:\n{profile_json(state)}\n\n"
                f"Stage summaries:\n{summary_json(state)}"
            )
            return await self.llm.call_json(
                system_prompt,
                user_message,
                agent_type="planner",
                schema=PlannerAssessment,
                session_id=state.session_id,
            )
        except Exception as e:
            self._degraded(state, e)
            return None
