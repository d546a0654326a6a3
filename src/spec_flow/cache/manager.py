from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from spec_flow.cache.ttl_lru import TTLRUCache
from spec_flow.utils.hashing import hash_payload, history_digest, normalize_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_KEY_CHARS = 500


@dataclass
class CachedResult:
    value: Any
    agent_type: str
    tags: List[str] = field(default_factory=list)
    reuse_count: int = 0
    last_validated_at: float = 0.0


def generate_cache_key(
    agent_type: str,
    system_prompt: str,
    user_message: str,
    history: Optional[Sequence[Dict[str, str]]] = None,
) -> str:
    """
    Deterministic key of one LLM call.

    Session id is not part of the key: identical prompts from different
    sessions share an entry.
    """
    digest = hash_payload(
        {
            "agent": agent_type,
            "system": normalize_text(system_prompt)[:SYSTEM_PROMPT_KEY_CHARS],
            "user": normalize_text(user_message),
            "history": history_digest(history or []),
        }
    )
    return f"llm:{agent_type}:{digest}"


class CacheManager:
    """Agent-aware facade over TTLRUCache: metadata, key derivation, group invalidation."""

    def __init__(self, cache: TTLRUCache, *, clock: Callable[[], float] = time.time):
        self.cache = cache
        self._clock = clock

    def get(self, key: str) -> Any | None:
        wrapped = self.cache.get(key)
        if wrapped is None:
            logger.debug(json.dumps({"event": "cache_miss", "key": key}, ensure_ascii=False))
            return None
        wrapped.reuse_count += 1
        wrapped.last_validated_at = self._clock()
        logger.debug(
            json.dumps(
                {"event": "cache_hit", "key": key, "agent": wrapped.agent_type, "reuse_count": wrapped.reuse_count},
                ensure_ascii=False,
            )
        )
        return wrapped.value

    def get_metadata(self, key: str) -> Dict[str, Any] | None:
        entry = self.cache.peek(key)
        if entry is None:
            return None
        wrapped: CachedResult = entry.value
        return {
            "agent_type": wrapped.agent_type,
            "tags": list(wrapped.tags),
            "reuse_count": wrapped.reuse_count,
            "last_validated_at": wrapped.last_validated_at,
            "access_count": entry.access_count,
        }

    def set(
        self,
        key: str,
        value: Any,
        *,
        agent_type: str,
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
    ) -> None:
        tag_list = list(tags or [])
        wrapped = CachedResult(
            value=value,
            agent_type=agent_type,
            tags=tag_list,
            last_validated_at=self._clock(),
        )
        self.cache.set(key, wrapped, ttl=ttl, tags=tag_list)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        *,
        agent_type: str,
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
    ) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        # ошибки factory не кэшируются и пробрасываются наверх
        value = await factory()
        self.set(key, value, agent_type=agent_type, ttl=ttl, tags=tags)
        return value

    def delete(self, key: str) -> bool:
        return self.cache.delete(key)

    def clear(self) -> None:
        self.cache.clear()

    def invalidate_by_agent(self, agent_type: str) -> int:
        removed = self.cache.invalidate_where(lambda _k, e: e.value.agent_type == agent_type)
        logger.info(
            json.dumps({"event": "cache_invalidate", "agent": agent_type, "removed": removed}, ensure_ascii=False)
        )
        return removed

    def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        tags = list(tags)
        removed = self.cache.invalidate_by_tags(tags)
        logger.info(json.dumps({"event": "cache_invalidate", "tags": tags, "removed": removed}, ensure_ascii=False))
        return removed

    def get_stats(self) -> Dict[str, Any]:
        stats = self.cache.get_stats().as_dict()
        by_agent: Dict[str, int] = {}
        for item in self.cache.export():
            agent = item["value"].agent_type
            by_agent[agent] = by_agent.get(agent, 0) + 1
        stats["by_agent"] = by_agent
        return stats

    def reset_stats(self) -> None:
        self.cache.reset_stats()

    def export(self) -> List[Dict[str, Any]]:
        out = []
        for item in self.cache.export():
            wrapped: CachedResult = item["value"]
            out.append(
                {
                    **item,
                    "value": wrapped.value,
                    "agent_type": wrapped.agent_type,
                    "reuse_count": wrapped.reuse_count,
                }
            )
        return out

    def import_entries(self, entries: Iterable[Dict[str, Any]]) -> int:
        prepared = []
        for item in entries:
            wrapped = CachedResult(
                value=item["value"],
                agent_type=item.get("agent_type") or "default",
                tags=list(item.get("tags") or []),
                reuse_count=int(item.get("reuse_count", 0)),
                last_validated_at=self._clock(),
            )
            prepared.append({**item, "value": wrapped})
        return self.cache.import_entries(prepared)

    def warmup(self, entries: Iterable[Dict[str, Any]]) -> int:
        """
        Pre-populates the cache. Each entry: agent_type, system_prompt,
        user_message, value, optional history/ttl/tags.
        """
        count = 0
        for item in entries:
            key = generate_cache_key(
                item["agent_type"],
                item.get("system_prompt", ""),
                item.get("user_message", ""),
                item.get("history"),
            )
            self.set(key, item["value"], agent_type=item["agent_type"], ttl=item.get("ttl"), tags=item.get("tags"))
            count += 1
        logger.info(json.dumps({"event": "cache_warmup", "count": count}, ensure_ascii=False))
        return count
