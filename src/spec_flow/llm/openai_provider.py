from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import openai

from spec_flow.llm.errors import (
    LLMError,
    LLMInvalidRequest,
    LLMProviderError,
    LLMRateLimited,
    LLMTimeout,
    LLMUnavailable,
    error_for_status,
)
from spec_flow.llm.types import LLMProvider, LLMRequest, LLMResponse, LLMUsage


def map_openai_error(e: Exception) -> LLMError:
    # порядок важен: APITimeoutError наследуется от APIConnectionError
    if isinstance(e, openai.APITimeoutError):
        return LLMTimeout(str(e))
    if isinstance(e, openai.APIConnectionError):
        return LLMUnavailable(str(e))
    if isinstance(e, openai.APIStatusError):
        return error_for_status(e.status_code, str(e))
    msg = str(e).lower()
    if "rate limit" in msg or "429" in msg:
        return LLMRateLimited(str(e))
    if "timeout" in msg or "timed out" in msg:
        return LLMTimeout(str(e))
    return LLMProviderError(str(e))


@dataclass
class OpenAIProvider(LLMProvider):
    """
    OpenAI-compatible chat completions provider.
    base_url позволяет ходить в OpenRouter/DeepSeek/локальные совместимые API.
    """
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_s: float = 30.0
    name: str = "openai"

    _client: Optional[Any] = None

    def __post_init__(self):
        if not self.api_key:
            raise LLMInvalidRequest("No API key configured for OpenAI-compatible provider", code="NO_OPENAI_KEY")
        # Важно: нигде не логируем api_key.
        self._client = openai.AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout_s)

    async def generate(self, req: LLMRequest) -> LLMResponse:
        messages = [{"role": m.role, "content": m.content} for m in req.messages]
        kwargs: dict = {
            "model": req.model,
            "messages": messages,
            "max_tokens": req.max_output_tokens,
        }
        if req.temperature is not None:
            kwargs["temperature"] = req.temperature
        if req.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            resp = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            raise map_openai_error(e) from e

        if not resp.choices:
            raise LLMProviderError("Provider returned no choices")
        content = (resp.choices[0].message.content or "").strip()
        usage = getattr(resp, "usage", None)
        return LLMResponse(
            content=content,
            model=getattr(resp, "model", None) or req.model,
            provider=self.name,
            usage=LLMUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) if usage else 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) if usage else 0,
                total_tokens=getattr(usage, "total_tokens", 0) if usage else 0,
                estimated=False,
            ),
            latency_ms=0,
            finish_reason=getattr(resp.choices[0], "finish_reason", None),
        )
