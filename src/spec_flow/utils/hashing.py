from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Dict, Optional, Sequence

_WS_RE = re.compile(r"\s+")

SHORT_DIGEST_CHARS = 12


def sha256_hex(text: str, *, length: Optional[int] = None) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return digest[:length] if length else digest


def short_digest(text: str) -> str:
    """Log-friendly fingerprint: identifies content without revealing it."""
    return sha256_hex(text, length=SHORT_DIGEST_CHARS)


def normalize_text(text: str | None) -> str:
    return _WS_RE.sub(" ", (text or "")).strip()


def hash_payload(payload: Any) -> str:
    # sort_keys: одинаковые словари дают одинаковый ключ
    return sha256_hex(json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str))


def history_digest(history: Sequence[Dict[str, str]]) -> Optional[str]:
    """Whitespace-insensitive digest of role:content pairs; None for an empty history."""
    if not history:
        return None
    lines = [f"{m.get('role') or ''}:{normalize_text(m.get('content'))}" for m in history]
    return sha256_hex("\n".join(lines))


def messages_fingerprint(messages: Sequence[Dict[str, str]]) -> Dict[str, object]:
    roles = [m.get("role") or "" for m in messages]
    contents = [m.get("content") or "" for m in messages]
    return {
        "count": len(messages),
        "total_chars": sum(len(c) for c in contents),
        "roles": roles,
        "digest": short_digest("|".join(f"{r}:{c}" for r, c in zip(roles, contents))),
    }
