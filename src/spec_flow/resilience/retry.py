from __future__ import annotations
import asyncio
import json
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from spec_flow.errors import CircuitOpenError, StageMigrationError, WorkflowError
from spec_flow.llm.errors import (
    LLMAuthError,
    LLMError,
    LLMInvalidRequest,
    LLMRateLimited,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorClass(str, Enum):
    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"
    THROTTLED = "throttled"


_THROTTLE_MARKERS = ("rate limit", "too many requests", "429", "quota exceeded")
_RETRYABLE_MARKERS = (
    "timeout", "timed out", "network", "connection", "econnreset", "econnrefused",
    "500", "502", "503", "504", "unavailable",
)
_NON_RETRYABLE_MARKERS = (
    "unauthorized", "forbidden", "authentication", "invalid api key", "401", "403",
    "bad request", "400", "not found", "404", "422",
)


def classify_error(exc: BaseException) -> ErrorClass:
    # сначала типы, потом эвристика по тексту
    if isinstance(exc, (CircuitOpenError, StageMigrationError)):
        return ErrorClass.NON_RETRYABLE
    if isinstance(exc, LLMRateLimited):
        return ErrorClass.THROTTLED
    if isinstance(exc, (LLMAuthError, LLMInvalidRequest)):
        return ErrorClass.NON_RETRYABLE
    if isinstance(exc, LLMError):
        return ErrorClass.RETRYABLE if exc.retryable else ErrorClass.NON_RETRYABLE
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return ErrorClass.RETRYABLE

    cause = exc.__cause__ or getattr(exc, "cause", None)
    if isinstance(exc, WorkflowError) and isinstance(cause, BaseException) and cause is not exc:
        return classify_error(cause)

    msg = str(exc).lower()
    if any(m in msg for m in _THROTTLE_MARKERS):
        return ErrorClass.THROTTLED
    if any(m in msg for m in _RETRYABLE_MARKERS):
        return ErrorClass.RETRYABLE
    if any(m in msg for m in _NON_RETRYABLE_MARKERS):
        return ErrorClass.NON_RETRYABLE
    # неизвестные ошибки считаем retryable
    return ErrorClass.RETRYABLE


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 10.0
    jitter: float = 0.3  # до +30%
    attempt_timeout_s: Optional[float] = None


def backoff_delay(attempt: int, error_class: ErrorClass, policy: RetryPolicy) -> float:
    """attempt is 1-based: the delay after the first failure uses exponent 0."""
    base = 3 if error_class is ErrorClass.THROTTLED else 2
    delay = min(policy.max_delay_s, policy.base_delay_s * (base ** (attempt - 1)))
    return max(0.0, delay + delay * policy.jitter * random.random())


async def with_adaptive_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    last_exc: Exception | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            if policy.attempt_timeout_s:
                return await asyncio.wait_for(fn(), timeout=policy.attempt_timeout_s)
            return await fn()
        except Exception as e:
            last_exc = e
            error_class = classify_error(e)
            if error_class is ErrorClass.NON_RETRYABLE or attempt == policy.max_attempts:
                raise
            delay = backoff_delay(attempt, error_class, policy)
            logger.warning(
                json.dumps(
                    {
                        "event": "workflow_retry",
                        "attempt": attempt,
                        "error_class": error_class.value,
                        "error_type": type(e).__name__,
                        "error": str(e),
                        "delay_s": round(delay, 3),
                    },
                    ensure_ascii=False,
                )
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await asyncio.sleep(delay)
    assert last_exc is not None
    raise last_exc
