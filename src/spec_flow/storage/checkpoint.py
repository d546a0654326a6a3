from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional, Protocol

from spec_flow.errors import CheckpointError, StageMigrationError
from spec_flow.graphs.state import SessionState

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"[^A-Za-z0-9_.-]")


class CheckpointStore(Protocol):
    async def get(self, thread_id: str) -> Optional[SessionState]: ...

    async def put(self, thread_id: str, state: SessionState) -> None: ...


class InMemoryCheckpointStore:
    """Keeps serialized snapshots so callers never share mutable state with the store."""

    def __init__(self):
        self._items: Dict[str, dict] = {}

    async def get(self, thread_id: str) -> Optional[SessionState]:
        data = self._items.get(thread_id)
        if data is None:
            return None
        return SessionState.from_dict(json.loads(json.dumps(data)))

    async def put(self, thread_id: str, state: SessionState) -> None:
        self._items[thread_id] = json.loads(json.dumps(state.to_dict(), ensure_ascii=False, default=str))

    async def delete(self, thread_id: str) -> None:
        self._items.pop(thread_id, None)


class JsonFileCheckpointStore:
    """One JSON file per thread under base_dir. Last writer wins."""

    def __init__(self, base_dir: Path | str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, thread_id: str) -> Path:
        if not thread_id:
            raise CheckpointError("thread_id is required")
        return self.base_dir / f"{_SAFE_ID_RE.sub('_', thread_id)}.json"

    async def get(self, thread_id: str) -> Optional[SessionState]:
        path = self._path(thread_id)
        if not path.is_file():
            return None
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return SessionState.from_dict(json.loads(raw))
        except StageMigrationError:
            raise
        except (OSError, ValueError, TypeError) as e:
            raise CheckpointError(f"Failed to load checkpoint {thread_id}: {e}") from e

    async def put(self, thread_id: str, state: SessionState) -> None:
        path = self._path(thread_id)
        payload = json.dumps(state.to_dict(), ensure_ascii=False, default=str, indent=2)
        tmp = path.with_suffix(".json.tmp")
        try:
            await asyncio.to_thread(tmp.write_text, payload, encoding="utf-8")
            await asyncio.to_thread(os.replace, tmp, path)
        except OSError as e:
            raise CheckpointError(f"Failed to save checkpoint {thread_id}: {e}") from e
        logger.debug(json.dumps({"event": "checkpoint_saved", "thread_id": thread_id}, ensure_ascii=False))

    async def delete(self, thread_id: str) -> None:
        path = self._path(thread_id)
        if path.exists():
            path.unlink()
