"""
FileStorage — JSON file-backed storage with persistence across restarts.

Data layout:
  {data_dir}/
    <url-quoted key>.json      one document per key

Features:
  - Survives process restarts (unlike MemoryStorage)
  - No external dependencies (no database server)
  - Writes go to a temp file first and are renamed into place
  - Single-process only (ETags are checked, but not across processes atomically)

Best for: small deployments, demos, the console sample.
"""
from __future__ import annotations

import json
import os
import uuid
from pathlib import Path
from typing import Any, Iterable, Optional
from urllib.parse import quote

import structlog

from database.storage_base import Storage

logger = structlog.get_logger()


class FileStorage(Storage):

    def __init__(self, data_dir: str = "./data"):
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        logger.info("file_storage_initialized", data_dir=str(self._data_dir))

    # ── Load / Save ───────────────────────────────────────

    def _file_path(self, key: str) -> Path:
        return self._data_dir / f"{quote(key, safe='')}.json"

    def _load(self, key: str) -> Optional[dict[str, Any]]:
        path = self._file_path(key)
        if not path.exists():
            return None
        with open(path, "r") as f:
            return json.load(f)

    def _flush(self, key: str, doc: dict[str, Any]) -> None:
        path = self._file_path(key)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(doc, f, indent=2, default=str)
        os.replace(tmp_path, path)  # atomic on POSIX

    # ── Storage interface ─────────────────────────────────

    async def read(self, keys: Iterable[str]) -> dict[str, dict[str, Any]]:
        found: dict[str, dict[str, Any]] = {}
        for key in keys:
            doc = self._load(key)
            if doc is not None:
                found[key] = doc
        return found

    async def write(self, changes: dict[str, dict[str, Any]]) -> None:
        for key, doc in changes.items():
            self.check_etag(key, doc, self._load(key))

        for key, doc in changes.items():
            stored = dict(doc)
            stored["eTag"] = uuid.uuid4().hex
            self._flush(key, stored)
        logger.debug("file_storage_written", keys=list(changes))

    async def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            path = self._file_path(key)
            if path.exists():
                path.unlink()
