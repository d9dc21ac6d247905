"""Port interfaces for claim storage."""

from .coordinator_port import OptimisticOutcome, RecordMutation, StorageCoordinator

__all__ = ["OptimisticOutcome", "RecordMutation", "StorageCoordinator"]
