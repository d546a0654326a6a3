from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class AgentLLMConfig:
    temperature: float = 0.3
    max_tokens: int = 1500
    model: Optional[str] = None  # None -> модель клиента по умолчанию


# extractor/planner почти детерминированы, asker чуть "живее", spec длинный
AGENT_LLM_CONFIGS: Dict[str, AgentLLMConfig] = {
    "extractor": AgentLLMConfig(temperature=0.1, max_tokens=1000),
    "planner": AgentLLMConfig(temperature=0.2, max_tokens=800),
    "asker": AgentLLMConfig(temperature=0.5, max_tokens=500),
    "risk": AgentLLMConfig(temperature=0.3, max_tokens=1500),
    "tech": AgentLLMConfig(temperature=0.3, max_tokens=1500),
    "mvp": AgentLLMConfig(temperature=0.3, max_tokens=1500),
    "spec": AgentLLMConfig(temperature=0.2, max_tokens=4000),
    "default": AgentLLMConfig(temperature=0.3, max_tokens=1500),
}


def get_agent_config(agent_type: str | None) -> AgentLLMConfig:
    return AGENT_LLM_CONFIGS.get(agent_type or "default") or AGENT_LLM_CONFIGS["default"]
