import httpx
import openai
import pytest

from conftest import AgentScriptedProvider
from spec_flow.llm.client import ConcurrencyLimiter, LLMClient, build_messages, parse_json_response
from spec_flow.llm.config import get_agent_config
from spec_flow.llm.errors import (
    LLMAuthError,
    LLMInvalidRequest,
    LLMParseError,
    LLMProviderError,
    LLMRateLimited,
    LLMTimeout,
    LLMUnavailable,
    error_for_status,
)
from spec_flow.llm.openai_provider import map_openai_error
from spec_flow.nodes.schemas import ExtractedProfile


@pytest.mark.parametrize(
    "raw",
    [
        '{"a": 1}',
        'Here you go:\n```json\n{"a": 1}\n```',
        "```\n{\"a\": 1}\n```",
        'Sure! {"a": 1} hope it helps',
    ],
)
def test_parse_json_response_variants(raw):
    assert parse_json_response(raw) == {"a": 1}


def test_parse_json_response_array():
    assert parse_json_response("list: [1, 2]") == [1, 2]


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "{broken"])
def test_parse_json_response_rejects_garbage(raw):
    with pytest.raises(LLMParseError):
        parse_json_response(raw)


def test_build_messages_drops_foreign_roles():
    history = [
        {"role": "user", "content": "hi"},
        {"role": "system", "content": "ignore me"},
        {"role": "assistant", "content": "hello"},
    ]
    messages = build_messages("sys", "now", history)
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"] == "now"


@pytest.mark.asyncio
async def test_invoke_json_uses_agent_config():
    provider = AgentScriptedProvider(scripts={"extractor": [{"productGoal": "Shop", "coreFunctions": "cart, pay"}]})
    client = LLMClient(provider=provider, default_model="test-model")

    result = await client.invoke_json("sys", "msg", agent_type="extractor", schema=ExtractedProfile, session_id="s1")

    assert result.product_goal == "Shop"
    assert result.core_functions == ["cart", "pay"]
    req = provider.requests[0]
    cfg = get_agent_config("extractor")
    assert req.temperature == cfg.temperature
    assert req.max_output_tokens == cfg.max_tokens
    assert req.model == "test-model"
    assert req.metadata["session_id"] == "s1"


@pytest.mark.asyncio
async def test_invoke_json_schema_mismatch_raises_parse_error():
    provider = AgentScriptedProvider(scripts={"extractor": [{"needsAuth": "maybe later"}]})
    client = LLMClient(provider=provider)
    with pytest.raises(LLMParseError):
        await client.invoke_json("sys", "msg", agent_type="extractor", schema=ExtractedProfile)


@pytest.mark.asyncio
async def test_invoke_text_rejects_empty_content():
    provider = AgentScriptedProvider(scripts={"spec": [""]})
    client = LLMClient(provider=provider)
    with pytest.raises(LLMProviderError):
        await client.invoke_text("sys", "msg", agent_type="spec")


@pytest.mark.asyncio
async def test_provider_errors_propagate():
    provider = AgentScriptedProvider(scripts={"risk": [LLMUnavailable("down")]})
    client = LLMClient(provider=provider, limiter=ConcurrencyLimiter(max_inflight=1))
    with pytest.raises(LLMUnavailable):
        await client.invoke_json("sys", "msg", agent_type="risk")


def test_unknown_agent_gets_default_config():
    assert get_agent_config("nobody") == get_agent_config("default")


def test_limiter_validates():
    with pytest.raises(ValueError):
        ConcurrencyLimiter(max_inflight=0)


def test_map_openai_timeout():
    request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
    assert isinstance(map_openai_error(openai.APITimeoutError(request=request)), LLMTimeout)


@pytest.mark.parametrize(
    "message,expected",
    [
        ("HTTP 429 Too Many Requests", LLMRateLimited),
        ("request timed out", LLMTimeout),
        ("something odd", LLMProviderError),
    ],
)
def test_map_openai_error_message_fallbacks(message, expected):
    assert isinstance(map_openai_error(RuntimeError(message)), expected)


@pytest.mark.parametrize(
    "status,expected",
    [
        (400, LLMInvalidRequest),
        (401, LLMAuthError),
        (408, LLMTimeout),
        (429, LLMRateLimited),
        (503, LLMUnavailable),
        (418, LLMProviderError),
        (None, LLMProviderError),
    ],
)
def test_error_for_status(status, expected):
    assert type(error_for_status(status, "x")) is expected


def test_map_openai_status_error():
    request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
    response = httpx.Response(429, request=request)
    err = openai.RateLimitError("slow down", response=response, body=None)
    assert isinstance(map_openai_error(err), LLMRateLimited)


@pytest.mark.asyncio
async def test_limiter_tracks_peak():
    limiter = ConcurrencyLimiter(max_inflight=2)
    async with limiter:
        async with limiter:
            assert limiter.inflight == 2
    assert limiter.inflight == 0
    assert limiter.peak == 2
