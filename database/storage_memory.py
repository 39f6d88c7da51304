"""
MemoryStorage — Dict-backed storage for development and testing.

Features:
  - Zero dependencies
  - ETag compare-and-swap on write, "*" overwrites unconditionally
  - Documents are deep-copied in and out, so callers never alias stored data
  - All data lost on process restart

Best for: local development, unit tests, the console sample.
"""
from __future__ import annotations

import copy
from typing import Any, Iterable, Optional

import structlog

from database.storage_base import Storage

logger = structlog.get_logger()


class MemoryStorage(Storage):

    def __init__(self, initial: Optional[dict[str, dict[str, Any]]] = None):
        self._memory: dict[str, dict[str, Any]] = copy.deepcopy(initial) if initial else {}
        self._etag = 0
        logger.info("memory_storage_initialized", documents=len(self._memory))

    async def read(self, keys: Iterable[str]) -> dict[str, dict[str, Any]]:
        return {
            key: copy.deepcopy(self._memory[key])
            for key in keys
            if key in self._memory
        }

    async def write(self, changes: dict[str, dict[str, Any]]) -> None:
        # Validate every document before touching any of them
        for key, doc in changes.items():
            self.check_etag(key, doc, self._memory.get(key))

        for key, doc in changes.items():
            stored = copy.deepcopy(doc)
            stored["eTag"] = self._next_etag()
            self._memory[key] = stored
        logger.debug("memory_storage_written", keys=list(changes))

    async def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._memory.pop(key, None)

    def _next_etag(self) -> str:
        self._etag += 1
        return str(self._etag)

    # ── Stats (for debugging) ─────────────────────────────

    def stats(self) -> dict[str, int]:
        return {"documents": len(self._memory), "writes": self._etag}
