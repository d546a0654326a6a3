from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _flag(value: str) -> bool:
    return value.lower() in {"1", "true", "yes"}


def _optional_float(value: str | None) -> Optional[float]:
    if value is None or not value.strip():
        return None
    return float(value)


@dataclass(frozen=True)
class APISettings:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    debug_logging: bool = False

    llm_base_url: str | None = None
    llm_model: str = "gpt-4.1-mini"
    llm_timeout_s: float = 30.0
    llm_max_inflight: int = 5

    cache_max_size: int = 500
    cache_ttl_s: float = 600.0
    cache_cleanup_interval_s: float = 60.0

    breaker_threshold: int = 5
    breaker_timeout_s: float = 60.0
    breaker_half_open_attempts: int = 2

    retry_max_attempts: int = 3
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 10.0
    retry_attempt_timeout_s: float | None = None

    checkpoint_storage: str = "memory"  # memory | file
    data_dir: str = "data"
    prompts_dir: str | None = None

    @classmethod
    def from_env(cls) -> "APISettings":
        load_dotenv()
        return cls(
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(os.getenv("API_PORT", "8000")),
            log_level=os.getenv("API_LOG_LEVEL", "info"),
            debug_logging=_flag(os.getenv("SPEC_FLOW_DEBUG_LOGGING", "false")),
            llm_base_url=os.getenv("LLM_PROVIDER_BASE_URL") or None,
            llm_model=os.getenv("LLM_MODEL", "gpt-4.1-mini"),
            llm_timeout_s=float(os.getenv("LLM_TIMEOUT_S", "30")),
            llm_max_inflight=int(os.getenv("LLM_MAX_INFLIGHT", "5")),
            cache_max_size=int(os.getenv("CACHE_MAX_SIZE", "500")),
            cache_ttl_s=float(os.getenv("CACHE_TTL_S", "600")),
            cache_cleanup_interval_s=float(os.getenv("CACHE_CLEANUP_INTERVAL_S", "60")),
            breaker_threshold=int(os.getenv("BREAKER_THRESHOLD", "5")),
            breaker_timeout_s=float(os.getenv("BREAKER_TIMEOUT_S", "60")),
            breaker_half_open_attempts=int(os.getenv("BREAKER_HALF_OPEN_ATTEMPTS", "2")),
            retry_max_attempts=int(os.getenv("RETRY_MAX_ATTEMPTS", "3")),
            retry_base_delay_s=float(os.getenv("RETRY_BASE_DELAY_S", "1")),
            retry_max_delay_s=float(os.getenv("RETRY_MAX_DELAY_S", "10")),
            retry_attempt_timeout_s=_optional_float(os.getenv("RETRY_ATTEMPT_TIMEOUT_S")),
            checkpoint_storage=os.getenv("CHECKPOINT_STORAGE", "memory").lower(),
            data_dir=os.getenv("SPEC_FLOW_DATA_DIR", "data"),
            prompts_dir=os.getenv("PROMPTS_DIR") or None,
        )

    @property
    def checkpoints_dir(self) -> Path:
        return Path(self.data_dir) / "checkpoints"


@lru_cache
def get_settings() -> APISettings:
    return APISettings.from_env()
