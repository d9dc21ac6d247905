"""Port interface for the claim storage coordinator."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from ...contracts import ClaimKey, TicketClaimRecord

RecordMutation = Callable[[Optional[TicketClaimRecord]], TicketClaimRecord]


@dataclass(frozen=True)
class OptimisticOutcome:
    """Result of a watched read-modify-write."""

    committed: bool
    record: Optional[TicketClaimRecord]


class StorageCoordinator(ABC):
    """
    Abstract port over the store holding claim records and claim locks.

    Implementations raise ``StorageError`` for backend faults and
    ``InvalidRecordError`` for undecodable payloads.
    """

    #: True when the store coordinates across processes.
    is_distributed: bool = False

    @abstractmethod
    async def get(self, key: ClaimKey) -> Optional[TicketClaimRecord]:
        """
        Read the record for a key.

        Args:
            key: Claim key.

        Returns:
            The record, or None when nothing is stored for the key.
        """
        pass

    @abstractmethod
    async def put(self, key: ClaimKey, record: TicketClaimRecord) -> None:
        """
        Unconditionally overwrite the record for a key.

        Args:
            key: Claim key.
            record: Record to store.
        """
        pass

    @abstractmethod
    async def acquire_lock(self, key: ClaimKey, holder: str, ttl_seconds: int) -> bool:
        """
        Create the claim lock if it does not exist.

        Args:
            key: Claim key.
            holder: Claimant identity stored as the lock value.
            ttl_seconds: Lock expiry.

        Returns:
            True only for the call that created the lock.
        """
        pass

    @abstractmethod
    async def release_lock(self, key: ClaimKey) -> None:
        """Delete the claim lock for a key, whoever holds it."""
        pass

    @abstractmethod
    async def lock_holder(self, key: ClaimKey) -> Optional[str]:
        """Identity stored in the unexpired claim lock, or None."""
        pass

    @abstractmethod
    async def optimistic_update(
        self,
        key: ClaimKey,
        mutate: RecordMutation,
        *,
        release_lock: bool = False,
    ) -> OptimisticOutcome:
        """
        Apply ``mutate`` to the freshest record and write it back atomically.

        The write only lands if the record was not modified concurrently.
        Conflicts are retried a bounded number of times; when they persist the
        latest observed record is returned with ``committed=False``.

        Args:
            key: Claim key.
            mutate: Receives the current record (or None) and returns the
                record to write. May raise ``ClaimRejected`` to abort.
            release_lock: Delete the claim lock in the same transaction.

        Returns:
            Outcome carrying the written or latest observed record.
        """
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Report whether the store is reachable. Never raises."""
        pass

    @abstractmethod
    def describe(self) -> str:
        """Backend label used in logs and diagnostics."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None

    async def __aenter__(self) -> "StorageCoordinator":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()
