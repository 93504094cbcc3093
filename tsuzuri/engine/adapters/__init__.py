from __future__ import annotations

"""Adapter interfaces and default implementations for pluggable engine backends.

Currently provides:
- KeyValueStore: the persistence boundary (async get/set/keys/remove)
- MemoryStore: in-process store for tests and headless runs
- JsonFileStore: one JSON file per key on disk
"""

from .storage import KeyValueStore, MemoryStore, JsonFileStore  # noqa: F401
