import sys
from pathlib import Path

# чтобы видеть src/
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

import pytest

from spec_flow.graphs.state import SessionState
from spec_flow.llm.types import LLMProvider, LLMRequest, LLMResponse, LLMUsage
from spec_flow.registry.prompts import StaticPromptRepo


class ManualClock:
    """Injectable clock for TTL and breaker timing."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class AgentScriptedProvider(LLMProvider):
    """
    Answers per agent from scripts[agent]; items are strings, dicts (sent as JSON)
    or exceptions (raised). Records every request.
    """
    name: str = "fake"
    scripts: Dict[str, List[Any]] = field(default_factory=dict)
    requests: List[LLMRequest] = field(default_factory=list)

    async def generate(self, req: LLMRequest) -> LLMResponse:
        await asyncio.sleep(0)
        self.requests.append(req)
        agent = req.metadata.get("agent", "default")
        script = self.scripts.get(agent) or []
        if not script:
            raise AssertionError(f"No scripted answer left for agent {agent!r}")
        item = script.pop(0)
        if isinstance(item, Exception):
            raise item
        content = item if isinstance(item, str) else json.dumps(item, ensure_ascii=False)
        return LLMResponse(
            content=content,
            model=req.model,
            provider=self.name,
            usage=LLMUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2, estimated=False),
            latency_ms=1,
            finish_reason="stop",
        )

    def calls(self, agent: str) -> int:
        return sum(1 for r in self.requests if r.metadata.get("agent") == agent)


class FakeNodeLLM:
    """Stands in for CachedLLM in node tests: answers[agent] is a value or an exception."""

    def __init__(self, answers: Dict[str, Any] | None = None):
        self.answers = answers or {}
        self.calls: List[Dict[str, Any]] = []

    async def _answer(self, agent_type: str, **kwargs):
        self.calls.append({"agent": agent_type, **kwargs})
        value = self.answers.get(agent_type)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise AssertionError(f"unexpected call for agent {agent_type!r}")
        return value

    async def call_json(self, system_prompt, user_message, history=None, *, agent_type, schema=None, session_id=None):
        value = await self._answer(agent_type, user_message=user_message, history=history)
        if schema is not None and isinstance(value, dict):
            return schema.model_validate(value)
        return value

    async def call_text(self, system_prompt, user_message, history=None, *, agent_type, session_id=None):
        return await self._answer(agent_type, user_message=user_message, history=history)


COMPLETE_PROFILE = {
    "product_goal": "Online booking for yoga studios",
    "target_users": "Studio owners and their clients",
    "core_functions": ["Class schedule", "Booking"],
    "needs_data_storage": True,
    "needs_multi_user": True,
    "needs_auth": False,
}


def make_state(**overrides) -> SessionState:
    state = SessionState.new(overrides.pop("session_id", "s-1"))
    for key, value in overrides.items():
        setattr(state, key, value)
    return state


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def prompt_repo():
    return StaticPromptRepo()


@pytest.fixture
def complete_profile():
    return dict(COMPLETE_PROFILE)


@pytest.fixture
def tmp_secrets_dir(tmp_path, monkeypatch):
    secrets_dir = tmp_path / "secrets"
    secrets_dir.mkdir()
    monkeypatch.setenv("SPEC_FLOW_SECRETS_DIR", str(secrets_dir))
    return secrets_dir

