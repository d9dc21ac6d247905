"""Adapter implementations for the storage coordinator port."""

from .memory_store import LocalProcessStore
from .redis_store import RemoteCoordinatedStore

__all__ = ["LocalProcessStore", "RemoteCoordinatedStore"]
