"""
Abstract Storage — key/document interface for persisted bot state.

Implementations:
  - MemoryStorage  (dict-based, single-process, no persistence)
  - FileStorage    (one JSON file per key, single-process, durable)

Documents are JSON-compatible dicts. Each stored document carries an `eTag`
string; a write whose document carries an eTag other than "*" only succeeds
when it matches the stored one (optimistic concurrency).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

WILDCARD_ETAG = "*"


class StorageError(Exception):
    """Base exception for storage backends."""


class ConcurrencyError(StorageError):
    def __init__(self, key: str, expected: str, actual: str):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"ETag conflict writing '{key}': document has '{expected}', stored '{actual}'"
        )


class Storage(ABC):
    """Interface that all storage backends must implement."""

    @abstractmethod
    async def read(self, keys: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Documents for the keys that exist. Missing keys are simply absent."""
        ...

    @abstractmethod
    async def write(self, changes: dict[str, dict[str, Any]]) -> None:
        ...

    @abstractmethod
    async def delete(self, keys: Iterable[str]) -> None:
        ...

    @staticmethod
    def check_etag(key: str, new_doc: dict[str, Any], old_doc: Optional[dict[str, Any]]) -> None:
        """Raise ConcurrencyError when `new_doc` may not replace `old_doc`."""
        e_tag = new_doc.get("eTag")
        if old_doc is None or not e_tag or e_tag == WILDCARD_ETAG:
            return
        stored = old_doc.get("eTag", "")
        if e_tag != stored:
            raise ConcurrencyError(key, e_tag, stored)
