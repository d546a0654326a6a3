from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from spec_flow.graphs.state import OptionChip, SessionState
from spec_flow.nodes.base import StageNode, profile_json
from spec_flow.nodes.schemas import AskerOutput
from spec_flow.registry.prompts import PromptType

_YES_NO = [
    OptionChip(id="yes", label="Yes", value="true"),
    OptionChip(id="no", label="No", value="false"),
]

FALLBACK_QUESTIONS: Dict[str, tuple[str, Optional[List[OptionChip]]]] = {
    "product_goal": ("What is the main goal of the product you want to build?", None),
    "target_users": ("Who are the main users of this product?", None),
    "core_functions": ("Which core features should the product have?", None),
    "needs_data_storage": ("Does the product need to save user data or content?", _YES_NO),
    "needs_multi_user": ("Will several users work with the product at the same time?", _YES_NO),
    "needs_auth": ("Do users need to sign in with an account?", _YES_NO),
}
DEFAULT_QUESTION = FALLBACK_QUESTIONS["product_goal"]


def fallback_question(missing_fields: List[str]) -> tuple[str, Optional[List[OptionChip]]]:
    for field_name in missing_fields:
        if field_name in FALLBACK_QUESTIONS:
            return FALLBACK_QUESTIONS[field_name]
    return DEFAULT_QUESTION


@dataclass
class AskerNode(StageNode):
    node_name = "asker"

    async def __call__(self, state: SessionState) -> Dict[str, Any]:
        self._log("node_start", state, missing=state.missing_fields)
        asked = "\n".join(f"- {q}" for q in state.asked_questions) or "none"
        user_message = (
            f"Requirement profile:\n{profile_json(state)}\n\n"
            f"Missing fields: {', '.join(state.missing_fields) or 'none'}\n\n"
            f"Questions already asked:\n{asked}\n\n"
            f"Current stage: {state.current_stage.name}\n"
            "Ask a NEW question, do not repeat earlier ones. While collecting requirements "
            "ask only about goals, users, use cases and features, not about technology."
        )
        try:
            system_prompt = self.prompt_repo.get_prompt(PromptType.ASKER)
            out: AskerOutput = await self.llm.call_json(
                system_prompt,
                user_message,
                agent_type="asker",
                schema=AskerOutput,
                session_id=state.session_id,
            )
        except Exception as e:
            self._degraded(state, e)
            question, options = fallback_question(state.missing_fields)
            return {
                "response": question,
                "options": list(options) if options else None,
                "asked_questions": [question],
            }

        options = [OptionChip(id=o.id, label=o.label, value=o.value) for o in out.options] or None
        self._step(state, {"options": len(options or [])})
        self._log("node_done", state, question_chars=len(out.message), options=len(options or []))
        return {
            "response": out.message,
            "options": options,
            "asked_questions": [out.message],
        }
