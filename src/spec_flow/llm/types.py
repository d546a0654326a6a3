from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Sequence

Role = Literal["system", "user", "assistant"]
FinishReason = Optional[str]

@dataclass(frozen=True)
class LLMMessage:
    role: Role
    content: str

@dataclass(frozen=True)
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated: bool = False

@dataclass(frozen=True)
class LLMResponse:
    content: str
    model: str
    provider: str
    usage: LLMUsage
    latency_ms: int
    finish_reason: FinishReason = None


@dataclass(frozen=True)
class LLMRequest:
    messages: Sequence[LLMMessage]
    model: str
    temperature: Optional[float] = 0.3
    max_output_tokens: int = 1500
    json_mode: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)  # agent, session_id, call_id


class LLMProvider(ABC):
    """One chat-completion backend. Providers raise LLMError subclasses only."""

    name: str

    @abstractmethod
    async def generate(self, req: LLMRequest) -> LLMResponse:
        raise NotImplementedError
