from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

SECRETS_DIR_ENV = "SPEC_FLOW_SECRETS_DIR"


class SecretNotFoundError(RuntimeError):
    pass


@lru_cache(maxsize=16)
def _dotenv(path: Path) -> Dict[str, str]:
    if not path.is_file():
        return {}
    return {k: (v or "").strip() for k, v in dotenv_values(path).items() if k}


def _mounted(path: Path) -> Optional[str]:
    # docker/k8s монтируют секрет отдельным файлом
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8").strip() or None


def default_secrets_dir() -> Path:
    """SPEC_FLOW_SECRETS_DIR, else `secrets/` next to the repository checkout."""
    override = (os.getenv(SECRETS_DIR_ENV) or "").strip()
    if override:
        return Path(override).expanduser().resolve()
    # src/spec_flow/secrets.py -> parents[2] is the repo root
    return (Path(__file__).resolve().parents[2].parent / "secrets").resolve()


def lookup_secret(name: str, secrets_dir: Path) -> Tuple[Optional[str], str]:
    """
    (value, source). Lookup order: env var NAME, NAME in <dir>/.env, file <dir>/NAME.
    The source is safe to log, the value never is.
    """
    value = (os.getenv(name) or "").strip()
    if value:
        return value, "env"
    value = _dotenv(secrets_dir / ".env").get(name)
    if value:
        return value, "dotenv"
    value = _mounted(secrets_dir / name)
    if value:
        return value, "file"
    return None, "missing"


def get_secret(name: str, *, required: bool = False, secrets_dir: Path | None = None) -> Optional[str]:
    directory = secrets_dir or default_secrets_dir()
    value, source = lookup_secret(name, directory)
    logger.debug(json.dumps({"event": "secret_lookup", "name": name, "source": source}, ensure_ascii=False))
    if required and not value:
        raise SecretNotFoundError(f"Missing secret {name}. Set env var {name} or create file {directory / name}")
    return value


def clear_secrets_cache() -> None:
    _dotenv.cache_clear()
