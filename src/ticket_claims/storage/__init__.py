"""Claim storage - the coordinator port, its adapters and backend selection."""

from .ports import OptimisticOutcome, RecordMutation, StorageCoordinator
from .adapters import LocalProcessStore, RemoteCoordinatedStore
from .factory import build_coordinator

__all__ = [
    "OptimisticOutcome",
    "RecordMutation",
    "StorageCoordinator",
    "LocalProcessStore",
    "RemoteCoordinatedStore",
    "build_coordinator",
]
