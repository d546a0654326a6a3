from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from spec_flow.graphs.state import DocumentSummary, SessionState, Stage
from spec_flow.nodes.base import StageNode, profile_json, summary_json
from spec_flow.registry.prompts import PromptType

DONE_RESPONSE = "Your specification document is ready."
FAILED_RESPONSE = "Document generation failed, please try again later."


@dataclass
class SpecGeneratorNode(StageNode):
    node_name = "spec_generator"

    async def __call__(self, state: SessionState) -> Dict[str, Any]:
        self._log("node_start", state)
        user_message = (
            f"Requirement profile:\n{profile_json(state)}\n\n"
            f"Stage summaries:\n{summary_json(state)}\n\n"
            "Write the complete specification document in Markdown."
        )
        try:
            system_prompt = self.prompt_repo.get_prompt(PromptType.SPEC)
            document = await self.llm.call_text(
                system_prompt,
                user_message,
                agent_type="spec",
                session_id=state.session_id,
            )
        except Exception as e:
            self._degraded(state, e)
            return {"response": FAILED_RESPONSE, "options": None, "need_more_info": False, "stop": True}

        self._step(state, {"document_chars": len(document)})
        self._log("node_done", state, document_chars=len(document))
        return {
            "summary": {Stage.DOCUMENT_GENERATION: DocumentSummary(final_spec=document)},
            "analyzed_stages": [Stage.DOCUMENT_GENERATION],
            "final_spec": document,
            "response": DONE_RESPONSE,
            "options": None,
            "current_stage": Stage.COMPLETED,
            "need_more_info": False,
            "stop": True,
        }
