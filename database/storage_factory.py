"""
Storage Factory — Create the right storage backend from configuration.

Configuration in settings.yaml:
    storage:
      # "memory" — In-memory dicts (development, testing)
      # "file"   — JSON files on disk (small deployments, demos)
      backend: "memory"

      # For file backend: directory path
      file_dir: "./data"

Usage:
    from database.storage_factory import create_storage, get_storage
    storage = create_storage(config)     # Create from config dict
    storage = get_storage()              # Get singleton instance
"""
from __future__ import annotations

import structlog
from typing import Optional

from database.storage_base import Storage

logger = structlog.get_logger()

_instance: Optional[Storage] = None


def create_storage(config: dict = None) -> Storage:
    """
    Factory: create the appropriate storage backend.

    Args:
        config: dict with keys:
            backend: "memory" | "file"  (default: "memory")
            file_dir: str (for file backend, default: "./data")
    """
    global _instance
    if _instance is not None:
        return _instance

    config = config or {}
    backend = config.get("backend", "memory")

    if backend == "file":
        from database.storage_file import FileStorage
        data_dir = config.get("file_dir", "./data")
        _instance = FileStorage(data_dir=data_dir)
        logger.info("storage_created", backend="file", data_dir=data_dir)

    else:  # "memory" or default
        from database.storage_memory import MemoryStorage
        _instance = MemoryStorage()
        logger.info("storage_created", backend="memory")

    return _instance


def get_storage() -> Storage:
    """Return the singleton storage instance, creating a memory storage if none exists."""
    global _instance
    if _instance is None:
        _instance = create_storage()
    return _instance


def reset_storage() -> None:
    """Reset the singleton (for testing)."""
    global _instance
    _instance = None
