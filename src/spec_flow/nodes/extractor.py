from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict

from pydantic import ValidationError

from spec_flow.errors import ExtractionError
from spec_flow.graphs.state import (
    BOOLEAN_PROFILE_FIELDS,
    RiskSummary,
    SessionState,
    Stage,
    TechStack,
    TechStackSummary,
    merge_profile,
    missing_required_fields,
)
from spec_flow.nodes.base import StageNode, profile_json, recent_history
from spec_flow.nodes.schemas import ExtractedProfile
from spec_flow.registry.prompts import PromptType

SELECTION_MAX_CHARS = 50

_GOAL_RE = re.compile(r"\b(i want to (build|make|create)|i'd like to (build|make|create)|we need an? )", re.I)
_YES = {"yes", "true", "y", "need", "needed", "required"}
_NO = {"no", "false", "n", "not needed", "none"}

_USER_RULES = (
    (("developers", "engineers", "programmers"), "Software developers"),
    (("students", "learners"), "Students and learners"),
    (("small business", "shop owners", "smb"), "Small business owners"),
    (("everyone", "general public", "anyone"), "General public"),
)

_FUNCTION_RULES = (
    (("sign up", "register", "registration"), "User registration"),
    (("share", "sharing"), "Content sharing"),
    (("comment", "comments"), "Comments"),
    (("notification", "notify", "reminder"), "Notifications"),
    (("search",), "Search"),
    (("payment", "checkout", "subscription"), "Payments"),
    (("dashboard", "analytics", "report"), "Dashboard and reporting"),
    (("chat", "messaging"), "Messaging"),
    (("schedule", "calendar", "booking"), "Scheduling"),
)


def is_option_selection(text: str) -> bool:
    return bool(text) and len(text) < SELECTION_MAX_CHARS and " " not in text


def parse_stack_selection(text: str) -> TechStack | None:
    """A pasted stack object; anything that does not validate is treated as free text."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(data, dict) or not (data.get("frontend") or data.get("backend")):
        return None
    try:
        return TechStack.model_validate({k: v for k, v in data.items() if k in TechStack.model_fields})
    except ValidationError:
        return None


def simple_extract(text: str, state: SessionState) -> Dict[str, Any]:
    """Keyword rules; cheap, deterministic, supplement the LLM extraction."""
    lowered = text.lower()
    profile = state.profile
    extracted: Dict[str, Any] = {}

    if _GOAL_RE.search(text) and not profile.get("product_goal"):
        extracted["product_goal"] = text

    for markers, label in _USER_RULES:
        if any(m in lowered for m in markers):
            extracted["target_users"] = label
            break

    functions = [label for markers, label in _FUNCTION_RULES if any(m in lowered for m in markers)]
    if functions:
        extracted["core_functions"] = functions

    if any(m in lowered for m in ("login", "log in", "sign in", "account", "password")):
        extracted["needs_auth"] = True
    if any(m in lowered for m in ("team", "multiple users", "collaborat", "multi-user")):
        extracted["needs_multi_user"] = True
    if any(m in lowered for m in ("save", "store", "database", "history", "persist")):
        extracted["needs_data_storage"] = True

    # короткий ответ "yes"/"no" на вопрос про первый незаполненный флаг
    pending = [f for f in state.missing_fields if f in BOOLEAN_PROFILE_FIELDS]
    if pending and lowered.strip() in _YES | _NO:
        extracted[pending[0]] = lowered.strip() in _YES

    return extracted


@dataclass
class ExtractorNode(StageNode):
    node_name = "extractor"

    async def __call__(self, state: SessionState) -> Dict[str, Any]:
        text = (state.user_input or "").strip()
        self._log("node_start", state, input_chars=len(text))

        if state.current_stage is Stage.RISK_ANALYSIS and is_option_selection(text):
            self._log("node_done", state, selection="risk_approach", value=text)
            return {
                "summary": {Stage.RISK_ANALYSIS: RiskSummary(selected_approach=text)},
                "missing_fields": [],
            }

        if state.current_stage is Stage.TECH_STACK:
            stack = parse_stack_selection(text)
            if stack is not None:
                existing = state.summary_for(Stage.TECH_STACK)
                update: Dict[str, Any] = {"tech_stack": stack}
                if existing is None or not existing.reasoning:
                    update["reasoning"] = "user selection"
                self._log("node_done", state, selection="tech_stack")
                return {
                    "summary": {Stage.TECH_STACK: TechStackSummary(**update)},
                    "missing_fields": [],
                }

        rules = simple_extract(text, state)
        user_message = f"Current requirement profile:\n{profile_json(state)}\n\nUser input:\n{text}"
        try:
            system_prompt = self.prompt_repo.get_prompt(PromptType.EXTRACTOR)
            extracted: ExtractedProfile = await self.llm.call_json(
                system_prompt,
                user_message,
                recent_history(state),
                agent_type="extractor",
                schema=ExtractedProfile,
                session_id=state.session_id,
            )
        except Exception as e:
            # в отличие от остальных узлов, extractor не деградирует
            self._log("node_failed", state, error_type=type(e).__name__, error=str(e))
            raise ExtractionError(f"Requirement extraction failed: {e}", cause=e) from e

        update = merge_profile(rules, extracted.model_dump(exclude_none=True))
        missing = missing_required_fields(merge_profile(state.profile, update))
        self._step(state, {"extracted": sorted(update), "rule_fields": sorted(rules)})
        self._log("node_done", state, extracted=sorted(update), missing=missing)
        return {"profile": update, "missing_fields": missing}
