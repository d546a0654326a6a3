from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class PromptNotFound(Exception):
    pass


class PromptType(str, Enum):
    EXTRACTOR = "extractor"
    PLANNER = "planner"
    ASKER = "asker"
    RISK = "risk"
    TECH = "tech"
    MVP = "mvp"
    SPEC = "spec"


DEFAULT_PROMPTS: Dict[PromptType, str] = {
    PromptType.EXTRACTOR: (
        "You extract product requirements from a conversation.\n"
        "Return ONLY a JSON object with any of these keys you can fill from the user's words:\n"
        "project_name (string), product_goal (string), target_users (string),\n"
        "use_cases (list of strings), core_functions (list of strings),\n"
        "needs_data_storage (bool), needs_multi_user (bool), needs_auth (bool).\n"
        "Leave a key out (or null) when the user did not say anything about it. Do not invent facts."
    ),
    PromptType.PLANNER: (
        "You assess how complete a product requirement profile is.\n"
        "Return ONLY JSON: {\"completeness\": 0-100, \"checklist\": {field: bool},\n"
        "\"missing_critical\": [field], \"can_proceed\": bool, \"recommendation\": string}."
    ),
    PromptType.ASKER: (
        "You are a friendly product consultant. Ask exactly ONE short question that fills the\n"
        "most important missing requirement. Offer 2-4 quick answer options when it helps.\n"
        "Return ONLY JSON: {\"message\": string, \"options\": [{\"id\": string, \"label\": string,\n"
        "\"value\": string}], \"type\": \"single\" | \"multiple\" | \"free\"}."
    ),
    PromptType.RISK: (
        "You are a senior software architect. Identify the main delivery risks of the product\n"
        "described below and propose 2-3 alternative solution approaches.\n"
        "Return ONLY JSON: {\"risks\": [{\"category\": string, \"description\": string,\n"
        "\"severity\": \"low\" | \"medium\" | \"high\", \"mitigation\": string}],\n"
        "\"solutions\": [{\"id\": string, \"name\": string, \"description\": string, \"approach\": string,\n"
        "\"pros\": [string], \"cons\": [string], \"estimated_effort\": string}],\n"
        "\"recommended_solution\": string, \"reasoning\": string}."
    ),
    PromptType.TECH: (
        "You recommend a technology stack for the product and chosen approach below.\n"
        "Return ONLY JSON: {\"recommended_category\": string, \"reasoning\": string,\n"
        "\"options\": [{\"id\": string, \"label\": string, \"category\": string,\n"
        "\"stack\": {\"frontend\": string, \"backend\": string, \"database\": string, \"deployment\": string},\n"
        "\"pros\": [string], \"cons\": [string], \"suitable_for\": string, \"evolution_cost\": string,\n"
        "\"recommended\": bool}]}. Put the recommended option first."
    ),
    PromptType.MVP: (
        "You cut the product down to a minimum viable product.\n"
        "Return ONLY JSON: {\"mvp_features\": [string], \"future_features\": [string],\n"
        "\"dev_plan\": {\"phase1\": [string], \"phase2\": [string], \"estimated_complexity\": string},\n"
        "\"recommendation\": string}."
    ),
    PromptType.SPEC: (
        "You write a product specification document in Markdown from the requirement profile\n"
        "and the stage summaries below. Sections: Overview, Target Users, Core Features,\n"
        "Risks and Chosen Approach, Technology Stack, MVP Scope, Non-goals, Development Plan."
    ),
}


class _SafeFormatDict(dict):
    def __missing__(self, key: str) -> str:  # pragma: no cover
        return "{" + key + "}"


def render_prompt(content: str, variables: Optional[Mapping[str, Any]] = None) -> str:
    """
    Template support:
    - Plain string: returned as-is.
    - JSON: {"template": "...{x}...", "defaults": {...}} rendered with variables over defaults.
    """
    text = (content or "").strip()
    if text.startswith("{") and text.endswith("}"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and "template" in data:
            defaults = data.get("defaults") or {}
            merged = dict(defaults) if isinstance(defaults, dict) else {}
            merged.update(dict(variables or {}))
            return str(data["template"]).format_map(_SafeFormatDict(merged))
    if variables:
        try:
            return text.format_map(_SafeFormatDict(dict(variables)))
        except (ValueError, IndexError):
            return text
    return text


def _as_prompt_type(prompt_type: PromptType | str) -> PromptType:
    try:
        return PromptType(prompt_type)
    except ValueError as e:
        raise PromptNotFound(f"Unknown prompt type: {prompt_type}") from e


@dataclass(frozen=True)
class StaticPromptRepo:
    """In-code prompts, used when no prompts directory is configured."""

    prompts: Mapping[PromptType, str] = field(default_factory=lambda: dict(DEFAULT_PROMPTS))

    def get_prompt(self, prompt_type: PromptType | str, variables: Optional[Mapping[str, Any]] = None) -> str:
        key = _as_prompt_type(prompt_type)
        if key not in self.prompts:
            raise PromptNotFound(f"Prompt {key.value} not found")
        return render_prompt(self.prompts[key], variables)


class FilePromptRepo:
    """
    Prompts from `<prompts_dir>/<type>.md`, cached for ttl_seconds.
    Missing files fall back to the built-in defaults.
    """

    def __init__(self, prompts_dir: Path | str, *, ttl_seconds: int = 120, fallback: StaticPromptRepo | None = None):
        self.prompts_dir = Path(prompts_dir)
        self.ttl = ttl_seconds
        self.fallback = fallback or StaticPromptRepo()
        self._cache: Dict[PromptType, Tuple[str, float]] = {}

    def get_prompt(self, prompt_type: PromptType | str, variables: Optional[Mapping[str, Any]] = None) -> str:
        key = _as_prompt_type(prompt_type)
        now = time.time()

        if key in self._cache:
            value, expires_at = self._cache[key]
            if expires_at > now:
                return render_prompt(value, variables)
            del self._cache[key]

        path = self.prompts_dir / f"{key.value}.md"
        if not path.is_file():
            logger.debug(json.dumps({"event": "prompt_fallback", "prompt": key.value}, ensure_ascii=False))
            return self.fallback.get_prompt(key, variables)

        content = path.read_text(encoding="utf-8")
        self._cache[key] = (content, now + self.ttl)
        return render_prompt(content, variables)

    def invalidate(self) -> None:
        self._cache.clear()
