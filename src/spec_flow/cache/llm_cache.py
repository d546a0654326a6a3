from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Type

from pydantic import BaseModel

from spec_flow.cache.manager import CacheManager, generate_cache_key
from spec_flow.llm.client import validate_schema


@dataclass
class CachedLLM:
    """
    What stage nodes talk to: consults the cache, calls the LLM client on miss,
    stores only successful results. A failed call leaves no entry.
    """
    llm: Any
    cache: Optional[CacheManager] = None
    ttl_s: Optional[float] = None

    async def call_json(
        self,
        system_prompt: str,
        user_message: str,
        history: Optional[Sequence[Dict[str, str]]] = None,
        *,
        agent_type: str,
        schema: Optional[Type[BaseModel]] = None,
        session_id: str | None = None,
    ) -> Any:
        async def _call() -> Any:
            result = await self.llm.invoke_json(
                system_prompt,
                user_message,
                history,
                agent_type=agent_type,
                session_id=session_id,
            )
            if schema is not None:
                # невалидный ответ не должен попасть в кэш
                validate_schema(schema, result)
            return result

        data = await self._cached(agent_type, system_prompt, user_message, history, _call, kind="json")
        if schema is None:
            return data
        # в кэше лежит сырой dict, чтобы экспорт/импорт оставались JSON-совместимыми
        return validate_schema(schema, data)

    async def call_text(
        self,
        system_prompt: str,
        user_message: str,
        history: Optional[Sequence[Dict[str, str]]] = None,
        *,
        agent_type: str,
        session_id: str | None = None,
    ) -> str:
        async def _call() -> str:
            return await self.llm.invoke_text(
                system_prompt,
                user_message,
                history,
                agent_type=agent_type,
                session_id=session_id,
            )

        return await self._cached(agent_type, system_prompt, user_message, history, _call, kind="text")

    async def _cached(self, agent_type, system_prompt, user_message, history, call, *, kind: str) -> Any:
        if self.cache is None:
            return await call()
        key = generate_cache_key(agent_type, system_prompt, user_message, history)
        return await self.cache.get_or_set(
            key,
            call,
            agent_type=agent_type,
            ttl=self.ttl_s,
            tags=[f"agent:{agent_type}", f"kind:{kind}"],
        )
