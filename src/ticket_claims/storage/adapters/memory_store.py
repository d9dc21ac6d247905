"""
In-process storage adapter.

Used only when no Redis is configured. Exclusivity holds within one process:
the event loop never interleaves the non-awaiting critical sections below.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from loguru import logger

from ..ports import OptimisticOutcome, RecordMutation, StorageCoordinator
from ...contracts import ClaimKey, TicketClaimRecord


class LocalProcessStore(StorageCoordinator):
    """Claim records and locks kept in plain dicts."""

    is_distributed = False

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the store.

        Args:
            clock: Monotonic seconds source used for lock expiry.
        """
        self._clock = clock
        self._records: Dict[str, TicketClaimRecord] = {}
        self._locks: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: ClaimKey) -> Optional[TicketClaimRecord]:
        return self._records.get(key.record_key)

    async def put(self, key: ClaimKey, record: TicketClaimRecord) -> None:
        self._records[key.record_key] = record

    async def acquire_lock(self, key: ClaimKey, holder: str, ttl_seconds: int) -> bool:
        now = self._clock()
        current = self._locks.get(key.lock_key)
        if current is not None:
            current_holder, expires_at = current
            if expires_at > now:
                return False
            logger.debug(f"Claim lock for {key} held by {current_holder} expired")

        self._locks[key.lock_key] = (holder, now + ttl_seconds)
        return True

    async def release_lock(self, key: ClaimKey) -> None:
        self._locks.pop(key.lock_key, None)

    async def optimistic_update(
        self,
        key: ClaimKey,
        mutate: RecordMutation,
        *,
        release_lock: bool = False,
    ) -> OptimisticOutcome:
        # Nothing can interleave between the read and the write here.
        updated = mutate(self._records.get(key.record_key))
        self._records[key.record_key] = updated
        if release_lock:
            self._locks.pop(key.lock_key, None)
        return OptimisticOutcome(committed=True, record=updated)

    async def ping(self) -> bool:
        return True

    def describe(self) -> str:
        return "local-process"

    async def lock_holder(self, key: ClaimKey) -> Optional[str]:
        current = self._locks.get(key.lock_key)
        if current is None or current[1] <= self._clock():
            return None
        return current[0]
