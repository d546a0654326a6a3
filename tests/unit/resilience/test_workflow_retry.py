import pytest

from spec_flow.errors import CircuitOpenError, ExtractionError, StageMigrationError
from spec_flow.llm.errors import LLMAuthError, LLMParseError, LLMRateLimited, LLMUnavailable
from spec_flow.resilience.retry import (
    ErrorClass,
    RetryPolicy,
    backoff_delay,
    classify_error,
    with_adaptive_retries,
)

FAST = RetryPolicy(max_attempts=3, base_delay_s=0.0, max_delay_s=0.0, jitter=0.0)


@pytest.mark.parametrize(
    "exc,expected",
    [
        (LLMRateLimited("slow down"), ErrorClass.THROTTLED),
        (LLMUnavailable("503"), ErrorClass.RETRYABLE),
        (LLMParseError("bad json"), ErrorClass.RETRYABLE),
        (LLMAuthError("bad key"), ErrorClass.NON_RETRYABLE),
        (CircuitOpenError("open"), ErrorClass.NON_RETRYABLE),
        (StageMigrationError("stage 42"), ErrorClass.NON_RETRYABLE),
        (TimeoutError(), ErrorClass.RETRYABLE),
        (RuntimeError("HTTP 429 Too Many Requests"), ErrorClass.THROTTLED),
        (RuntimeError("401 Unauthorized"), ErrorClass.NON_RETRYABLE),
        (RuntimeError("weird"), ErrorClass.RETRYABLE),
    ],
)
def test_classify_error(exc, expected):
    assert classify_error(exc) is expected


def test_workflow_error_is_classified_by_cause():
    assert classify_error(ExtractionError("extract failed", cause=LLMAuthError("key"))) is ErrorClass.NON_RETRYABLE
    assert classify_error(ExtractionError("extract failed", cause=LLMUnavailable("503"))) is ErrorClass.RETRYABLE


def test_backoff_grows_faster_when_throttled():
    policy = RetryPolicy(base_delay_s=1.0, max_delay_s=100.0, jitter=0.0)
    assert backoff_delay(1, ErrorClass.RETRYABLE, policy) == 1.0
    assert backoff_delay(3, ErrorClass.RETRYABLE, policy) == 4.0
    assert backoff_delay(3, ErrorClass.THROTTLED, policy) == 9.0


def test_backoff_is_capped_with_bounded_jitter():
    policy = RetryPolicy(base_delay_s=1.0, max_delay_s=5.0, jitter=0.3)
    for _ in range(20):
        delay = backoff_delay(10, ErrorClass.RETRYABLE, policy)
        assert 5.0 <= delay <= 6.5


@pytest.mark.asyncio
async def test_retries_until_success():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise LLMUnavailable("503")
        return "done"

    retried = []
    result = await with_adaptive_retries(flaky, policy=FAST, on_retry=lambda a, e, d: retried.append(a))
    assert result == "done"
    assert retried == [1, 2]


@pytest.mark.asyncio
async def test_non_retryable_fails_fast():
    attempts = []

    async def bad_key():
        attempts.append(1)
        raise LLMAuthError("invalid api key")

    with pytest.raises(LLMAuthError):
        await with_adaptive_retries(bad_key, policy=FAST)
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    attempts = []

    async def always_down():
        attempts.append(1)
        raise LLMUnavailable("503")

    with pytest.raises(LLMUnavailable):
        await with_adaptive_retries(always_down, policy=FAST)
    assert len(attempts) == 3
