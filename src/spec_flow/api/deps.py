from __future__ import annotations

from functools import lru_cache

from spec_flow.api.config import APISettings, get_settings
from spec_flow.cache.llm_cache import CachedLLM
from spec_flow.cache.manager import CacheManager
from spec_flow.cache.ttl_lru import TTLRUCache
from spec_flow.graphs.workflow import build_workflow_graph
from spec_flow.llm.client import ConcurrencyLimiter, LLMClient
from spec_flow.llm.openai_provider import OpenAIProvider
from spec_flow.nodes import StageNodes
from spec_flow.orchestrator.engine import WorkflowEngine
from spec_flow.orchestrator.service import WorkflowService
from spec_flow.registry.prompts import FilePromptRepo, StaticPromptRepo
from spec_flow.resilience.circuit_breaker import CircuitBreaker
from spec_flow.resilience.retry import RetryPolicy
from spec_flow.secrets import get_secret
from spec_flow.storage.checkpoint import InMemoryCheckpointStore, JsonFileCheckpointStore
from spec_flow.telemetry.log_telemetry import LogTelemetry

# Один экземпляр кэша и breaker на процесс, общий для всех сессий;
# тесты собирают свои экземпляры через build_workflow_service.


@lru_cache
def get_cache_manager() -> CacheManager:
    settings = get_settings()
    cache = TTLRUCache(
        max_size=settings.cache_max_size,
        default_ttl_s=settings.cache_ttl_s,
        cleanup_interval_s=settings.cache_cleanup_interval_s,
    )
    return CacheManager(cache)


@lru_cache
def get_breaker() -> CircuitBreaker:
    settings = get_settings()
    return CircuitBreaker(
        failure_threshold=settings.breaker_threshold,
        reset_timeout_s=settings.breaker_timeout_s,
        half_open_attempts=settings.breaker_half_open_attempts,
    )


@lru_cache
def get_llm_client() -> LLMClient:
    settings = get_settings()
    provider = OpenAIProvider(
        api_key=get_secret("OPENAI_API_KEY", required=True),
        base_url=settings.llm_base_url,
        timeout_s=settings.llm_timeout_s,
    )
    return LLMClient(
        provider=provider,
        default_model=settings.llm_model,
        limiter=ConcurrencyLimiter(max_inflight=settings.llm_max_inflight),
    )


@lru_cache
def get_prompt_repo():
    settings = get_settings()
    if settings.prompts_dir:
        return FilePromptRepo(settings.prompts_dir)
    return StaticPromptRepo()


@lru_cache
def get_telemetry() -> LogTelemetry:
    return LogTelemetry()


@lru_cache
def get_checkpoint_store():
    settings = get_settings()
    if settings.checkpoint_storage == "file":
        return JsonFileCheckpointStore(settings.checkpoints_dir)
    return InMemoryCheckpointStore()


def build_workflow_service(
    *,
    llm,
    prompt_repo,
    checkpoints,
    cache: CacheManager | None = None,
    breaker: CircuitBreaker | None = None,
    retry_policy: RetryPolicy | None = None,
    telemetry=None,
    cache_ttl_s: float | None = None,
) -> WorkflowService:
    nodes = StageNodes.build(
        llm=CachedLLM(llm=llm, cache=cache, ttl_s=cache_ttl_s),
        prompt_repo=prompt_repo,
        telemetry=telemetry,
    )
    engine = WorkflowEngine(graph=build_workflow_graph(nodes), checkpoints=checkpoints, telemetry=telemetry)
    return WorkflowService(engine=engine, breaker=breaker, retry_policy=retry_policy)


def retry_policy_from_settings(settings: APISettings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay_s=settings.retry_base_delay_s,
        max_delay_s=settings.retry_max_delay_s,
        attempt_timeout_s=settings.retry_attempt_timeout_s,
    )


@lru_cache
def get_workflow_service() -> WorkflowService:
    settings = get_settings()
    return build_workflow_service(
        llm=get_llm_client(),
        prompt_repo=get_prompt_repo(),
        checkpoints=get_checkpoint_store(),
        cache=get_cache_manager(),
        breaker=get_breaker(),
        retry_policy=retry_policy_from_settings(settings),
        telemetry=get_telemetry(),
        cache_ttl_s=settings.cache_ttl_s,
    )
