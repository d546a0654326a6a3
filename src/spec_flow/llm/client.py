from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from typing import Any, Dict, List, Optional, Sequence, Type
from uuid import uuid4

import tiktoken
from pydantic import BaseModel, ValidationError

from spec_flow.llm.config import get_agent_config
from spec_flow.llm.errors import (
    LLMAuthError,
    LLMError,
    LLMInvalidRequest,
    LLMParseError,
    LLMProviderError,
    LLMRateLimited,
    LLMTimeout,
    LLMUnavailable,
)
from spec_flow.llm.types import LLMMessage, LLMProvider, LLMRequest, LLMResponse
from spec_flow.utils.hashing import messages_fingerprint, short_digest

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_FENCED_ANY_RE = re.compile(r"```[a-zA-Z0-9_-]*\s*(.*?)```", re.DOTALL)


class ConcurrencyLimiter:
    """Caps in-flight provider calls across all sessions; tracks the peak for logs."""

    def __init__(self, max_inflight: int):
        if max_inflight <= 0:
            raise ValueError("max_inflight must be positive")
        self.max_inflight = max_inflight
        self.inflight = 0
        self.peak = 0
        self._sem = asyncio.Semaphore(max_inflight)

    async def __aenter__(self):
        await self._sem.acquire()
        self.inflight += 1
        self.peak = max(self.peak, self.inflight)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.inflight -= 1
        self._sem.release()
        return False


def parse_json_response(text: str) -> Any:
    """
    JSON out of a model answer:
    1) ```json ... ``` block, 2) any fenced block,
    3) from the first { to the last } (or [ ... ]).
    """
    text = (text or "").strip()
    if not text:
        raise LLMParseError("Empty model response", raw=text)

    candidates: List[str] = []
    m = _FENCED_JSON_RE.search(text)
    if m:
        candidates.append(m.group(1))
    m = _FENCED_ANY_RE.search(text)
    if m:
        candidates.append(m.group(1))
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start, end = text.find(open_ch), text.rfind(close_ch)
        if start != -1 and end > start:
            candidates.append(text[start : end + 1])
    candidates.append(text)

    for candidate in candidates:
        try:
            return json.loads(candidate.strip())
        except (json.JSONDecodeError, ValueError):
            continue
    raise LLMParseError("Model response is not valid JSON", raw=text[:500])


def validate_schema(schema: Type[BaseModel], data: Any) -> BaseModel:
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise LLMParseError(f"Response does not match {schema.__name__}: {e}") from e


def build_messages(
    system_prompt: str,
    user_message: str,
    history: Optional[Sequence[Dict[str, str]]] = None,
) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for m in history or []:
        role = m.get("role")
        if role in {"user", "assistant"}:
            messages.append({"role": role, "content": m.get("content") or ""})
    messages.append({"role": "user", "content": user_message})
    return messages


class LLMClient:
    """
    Single entry-point for LLM calls in the codebase.

    - text: `invoke_text(system_prompt, user_message, history, agent_type=...) -> str`
    - json: `invoke_json(..., schema=Model) -> Model | dict`

    One attempt per call: retries and the circuit breaker live one level up,
    around the whole workflow invocation.
    """

    def __init__(
        self,
        *,
        provider: LLMProvider,
        default_model: str = "gpt-4.1-mini",
        limiter: Optional[ConcurrencyLimiter] = None,
        timeout_s: Optional[float] = None,
    ):
        self._provider = provider
        self._default_model = default_model
        self._limiter = limiter or ConcurrencyLimiter(max_inflight=5)
        self._timeout_s = timeout_s

    @property
    def default_model(self) -> str:
        return self._default_model

    def _classify_error(self, err: Exception) -> str:
        if isinstance(err, LLMTimeout):
            return "timeout"
        if isinstance(err, LLMRateLimited):
            return "rate_limit"
        if isinstance(err, LLMInvalidRequest):
            return "invalid_request"
        if isinstance(err, LLMAuthError):
            return "auth_error"
        if isinstance(err, LLMProviderError):
            return "provider_error"
        if isinstance(err, LLMUnavailable):
            return "unavailable"
        if isinstance(err, LLMParseError):
            return "parse_error"
        if isinstance(err, LLMError):
            return "llm_error"
        return "unknown"

    def _estimate_tokens(self, text: str, *, model: str | None) -> int:
        if not text:
            return 0
        try:
            try:
                enc = tiktoken.encoding_for_model(model or "")
            except KeyError:
                enc = tiktoken.get_encoding("cl100k_base")
            return len(enc.encode(text))
        except Exception:
            # tiktoken качает словари при первом вызове; оффлайн считаем грубо
            return max(1, len(text) // 4)

    def _debug_enabled(self) -> bool:
        return os.getenv("SPEC_FLOW_DEBUG_LOGGING", "false").lower() in {"1", "true", "yes"}

    async def _generate(
        self,
        messages: List[Dict[str, str]],
        *,
        agent_type: str,
        json_mode: bool,
        session_id: str | None,
    ) -> LLMResponse:
        cfg = get_agent_config(agent_type)
        model = cfg.model or self._default_model
        call_id = uuid4().hex[:12]
        payload = {
            "call_id": call_id,
            "agent": agent_type,
            "session_id": session_id,
            "provider": getattr(self._provider, "name", None),
            "model": model,
            "inflight": self._limiter.inflight,
            "messages": messages_fingerprint(messages),
        }
        logger.info(json.dumps({"event": "llm_call_start", **payload}, ensure_ascii=False))
        req = LLMRequest(
            messages=[LLMMessage(role=m["role"], content=m["content"]) for m in messages],
            model=model,
            temperature=cfg.temperature,
            max_output_tokens=cfg.max_tokens,
            json_mode=json_mode,
            metadata={"agent": agent_type, "session_id": session_id, "call_id": call_id},
        )
        start = time.perf_counter()
        try:
            async with self._limiter:
                if self._timeout_s:
                    try:
                        resp = await asyncio.wait_for(self._provider.generate(req), timeout=self._timeout_s)
                    except asyncio.TimeoutError as e:
                        raise LLMTimeout(f"LLM call exceeded {self._timeout_s}s") from e
                else:
                    resp = await self._provider.generate(req)
        except Exception as e:
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.warning(
                json.dumps(
                    {
                        "event": "llm_call_error",
                        **payload,
                        "latency_ms": latency_ms,
                        "error_type": self._classify_error(e),
                        "error": str(e),
                    },
                    ensure_ascii=False,
                )
            )
            raise

        latency_ms = int((time.perf_counter() - start) * 1000)
        usage = resp.usage
        total_tokens = usage.total_tokens
        if not total_tokens:
            total_tokens = self._estimate_tokens(
                "\n".join(m["content"] for m in messages) + resp.content, model=model
            )
        logger.info(
            json.dumps(
                {
                    "event": "llm_call_end",
                    **payload,
                    "latency_ms": latency_ms,
                    "usage_prompt_tokens": usage.prompt_tokens,
                    "usage_completion_tokens": usage.completion_tokens,
                    "usage_total_tokens": total_tokens,
                    "usage_estimated": not usage.total_tokens,
                    "finish_reason": resp.finish_reason,
                    "output_chars": len(resp.content or ""),
                    "output_fingerprint": short_digest(resp.content) if resp.content else None,
                },
                ensure_ascii=False,
            )
        )
        if self._debug_enabled():
            logger.info(
                json.dumps(
                    {"event": "llm_debug_messages", "call_id": call_id, "messages": messages, "response": resp.content},
                    ensure_ascii=False,
                    default=str,
                )
            )
        return resp

    async def invoke_text(
        self,
        system_prompt: str,
        user_message: str,
        history: Optional[Sequence[Dict[str, str]]] = None,
        *,
        agent_type: str = "default",
        session_id: str | None = None,
    ) -> str:
        messages = build_messages(system_prompt, user_message, history)
        resp = await self._generate(messages, agent_type=agent_type, json_mode=False, session_id=session_id)
        if not resp.content:
            raise LLMProviderError("Empty model response")
        return resp.content

    async def invoke_json(
        self,
        system_prompt: str,
        user_message: str,
        history: Optional[Sequence[Dict[str, str]]] = None,
        *,
        agent_type: str = "default",
        schema: Optional[Type[BaseModel]] = None,
        session_id: str | None = None,
    ) -> Any:
        messages = build_messages(system_prompt, user_message, history)
        resp = await self._generate(messages, agent_type=agent_type, json_mode=False, session_id=session_id)
        data = parse_json_response(resp.content)
        if schema is None:
            return data
        return validate_schema(schema, data)
