"""Persistence utilities for notationlab."""

from .snapshot import build_snapshot, restore_root
from .store import JsonFileStore, MemoryStore, PersistenceCollaborator

__all__ = [
    "JsonFileStore",
    "MemoryStore",
    "PersistenceCollaborator",
    "build_snapshot",
    "restore_root",
]
