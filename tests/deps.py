from dataclasses import dataclass, field
from typing import Any, Dict, List

from conftest import AgentScriptedProvider
from spec_flow.api.deps import build_workflow_service
from spec_flow.cache.manager import CacheManager
from spec_flow.cache.ttl_lru import TTLRUCache
from spec_flow.llm.client import LLMClient
from spec_flow.orchestrator.service import WorkflowService
from spec_flow.registry.prompts import StaticPromptRepo
from spec_flow.resilience.circuit_breaker import CircuitBreaker
from spec_flow.resilience.retry import RetryPolicy
from spec_flow.storage.checkpoint import InMemoryCheckpointStore
from spec_flow.telemetry.log_telemetry import LogTelemetry

NO_WAIT = RetryPolicy(max_attempts=3, base_delay_s=0.0, max_delay_s=0.0, jitter=0.0)


@dataclass
class TestDeps:
    """
    Всё, что собирает build_workflow_service, но с фейковым провайдером.
    Используется ТОЛЬКО в тестах.
    """
    __test__ = False

    provider: AgentScriptedProvider
    cache: CacheManager
    breaker: CircuitBreaker
    checkpoints: InMemoryCheckpointStore = field(default_factory=InMemoryCheckpointStore)
    telemetry: LogTelemetry = field(default_factory=LogTelemetry)

    def service(self, *, retry_policy: RetryPolicy = NO_WAIT) -> WorkflowService:
        return build_workflow_service(
            llm=LLMClient(provider=self.provider, default_model="test-model"),
            prompt_repo=StaticPromptRepo(),
            checkpoints=self.checkpoints,
            cache=self.cache,
            breaker=self.breaker,
            retry_policy=retry_policy,
            telemetry=self.telemetry,
        )


def make_deps(scripts: Dict[str, List[Any]], *, use_cache: bool = True, breaker: CircuitBreaker | None = None) -> TestDeps:
    cache = CacheManager(TTLRUCache(max_size=100)) if use_cache else None
    return TestDeps(
        provider=AgentScriptedProvider(scripts=scripts),
        cache=cache,
        breaker=breaker or CircuitBreaker(failure_threshold=5, reset_timeout_s=60),
    )
