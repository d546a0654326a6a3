from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, TypeVar

from spec_flow.errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    CLOSED -> OPEN после failure_threshold подряд идущих ошибок;
    OPEN -> HALF_OPEN через reset_timeout_s;
    HALF_OPEN: half_open_attempts пробных вызовов, любая ошибка -> OPEN,
    half_open_attempts успехов подряд -> CLOSED.
    """
    failure_threshold: int = 5
    reset_timeout_s: float = 60.0
    half_open_attempts: int = 2
    name: str = "workflow"
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self):
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._half_open_successes = 0
        self._half_open_in_flight = 0
        self._opened_at: float | None = None
        self._last_failure_at: float | None = None
        self._last_state_change = self.clock()
        self._total_requests = 0
        self._success_count = 0
        self._failure_count = 0
        self._rejected_count = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def _transition(self, new_state: CircuitState) -> None:
        # вызывается под self._lock
        if new_state is self._state:
            return
        old = self._state
        self._state = new_state
        self._last_state_change = self.clock()
        if new_state is CircuitState.OPEN:
            self._opened_at = self._last_state_change
        if new_state is CircuitState.HALF_OPEN:
            self._half_open_successes = 0
            self._half_open_in_flight = 0
        if new_state is CircuitState.CLOSED:
            self._opened_at = None
            self._consecutive_failures = 0
        logger.warning(
            json.dumps(
                {"event": "circuit_state_change", "breaker": self.name, "from": old.value, "to": new_state.value},
                ensure_ascii=False,
            )
        )

    def _maybe_half_open(self) -> None:
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if (self.clock() - self._opened_at) >= self.reset_timeout_s:
                self._transition(CircuitState.HALF_OPEN)

    def allow_request(self) -> bool:
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.HALF_OPEN:
                if self._half_open_in_flight < self.half_open_attempts - self._half_open_successes:
                    self._half_open_in_flight += 1
                    return True
                return False
            return False

    def record_success(self) -> None:
        with self._lock:
            self._success_count += 1
            self._consecutive_failures = 0
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)
                self._half_open_successes += 1
                if self._half_open_successes >= self.half_open_attempts:
                    self._transition(CircuitState.CLOSED)

    def release(self) -> None:
        """Returns a half-open slot without counting an outcome (cancelled trial)."""
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)

    def record_failure(self, exc: Exception | None = None) -> None:  # noqa: ARG002
        with self._lock:
            self._failure_count += 1
            self._consecutive_failures += 1
            self._last_failure_at = self.clock()
            if self._state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
                return
            if self._state is CircuitState.CLOSED and self._consecutive_failures >= self.failure_threshold:
                self._transition(CircuitState.OPEN)

    def time_until_reset(self) -> float:
        with self._lock:
            if self._state is not CircuitState.OPEN or self._opened_at is None:
                return 0.0
            return max(0.0, self.reset_timeout_s - (self.clock() - self._opened_at))

    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        with self._lock:
            self._total_requests += 1
        if not self.allow_request():
            with self._lock:
                self._rejected_count += 1
            retry_after = self.time_until_reset()
            raise CircuitOpenError(
                f"Circuit '{self.name}' is open, retry in {retry_after:.1f}s",
                retry_after_s=retry_after,
            )
        try:
            result = await fn()
        except Exception as e:
            self.record_failure(e)
            raise
        except BaseException:
            # отменённый вызов не считается ни успехом, ни ошибкой
            self.release()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._transition(CircuitState.CLOSED)
            self._consecutive_failures = 0
            self._half_open_successes = 0
            self._half_open_in_flight = 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            self._maybe_half_open()
            return {
                "name": self.name,
                "state": self._state.value,
                "total_requests": self._total_requests,
                "success_count": self._success_count,
                "failure_count": self._failure_count,
                "rejected_count": self._rejected_count,
                "consecutive_failures": self._consecutive_failures,
                "last_failure_at": self._last_failure_at,
                "last_state_change": self._last_state_change,
            }

