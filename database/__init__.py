"""
Storage layer — key/document persistence for bot state.

Backends:
  - In-memory (dict-based, for development/testing)
  - File (JSON files on disk, for small deployments)

Quick start:
  from database import create_storage
  storage = create_storage({"backend": "memory"})
  docs = await storage.read(["test/users/u1"])
"""
from database.storage_base import Storage, StorageError, ConcurrencyError, WILDCARD_ETAG
from database.storage_memory import MemoryStorage
from database.storage_file import FileStorage
from database.storage_factory import create_storage, get_storage, reset_storage

__all__ = [
    # Storage interface
    "Storage", "StorageError", "ConcurrencyError", "WILDCARD_ETAG",
    # Storage backends
    "MemoryStorage", "FileStorage",
    # Factory
    "create_storage", "get_storage", "reset_storage",
]
