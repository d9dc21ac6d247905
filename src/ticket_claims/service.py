"""
Ticket claim service - the operations the chat layer calls.

Construct one service per process with ``build_service`` and share it; the
storage coordinator inside it is created once and injected into both
protocols.
"""

from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from pydantic import ValidationError

from .config import Settings, get_settings
from .contracts import (
    ClaimFailure,
    ClaimKey,
    ClaimResult,
    FailureReason,
    PreviousState,
    TicketClaimRecord,
    UnclaimResult,
    utc_now,
)
from .errors import TicketClaimError
from .protocols import ClaimProtocol, UnclaimProtocol
from .storage import StorageCoordinator, build_coordinator


class TicketClaimService:
    """
    Facade over claim storage and the claim/unclaim protocols.

    No method raises: failures come back as ``ClaimFailure`` values, or as
    None for the best-effort store and load operations.
    """

    def __init__(
        self,
        coordinator: StorageCoordinator,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the service.

        Args:
            coordinator: Storage coordinator shared by both protocols.
            settings: Settings to read. Defaults to the cached settings.
            clock: Source of record timestamps.
        """
        settings = settings or get_settings()
        self._coordinator = coordinator
        self._clock = clock
        self._claim = ClaimProtocol(
            coordinator,
            lock_ttl_seconds=settings.CLAIM_LOCK_TTL_SECONDS,
            clock=clock,
            debug_attempts=settings.DEBUG_TICKET_REACTIONS,
        )
        self._unclaim = UnclaimProtocol(
            coordinator,
            debug_attempts=settings.DEBUG_TICKET_REACTIONS,
        )

    @property
    def coordinator(self) -> StorageCoordinator:
        return self._coordinator

    async def store_ticket_notification(
        self,
        ticket_id: str,
        chat_id: str,
        notification_message_id: str,
    ) -> Optional[TicketClaimRecord]:
        """
        Record a freshly posted ticket notification as unclaimed.

        Any claim lock left over for the same key is cleared. Persistence is
        best-effort: failures are logged and never reach the caller.

        Returns:
            The stored record, or None if it could not be persisted.
        """
        try:
            key = ClaimKey(chat_id=chat_id, notification_message_id=notification_message_id)
            record = TicketClaimRecord.for_notification(ticket_id, key, created_at=self._clock())
        except ValidationError as e:
            logger.error(f"Refusing to store notification for ticket {ticket_id!r}: {e}")
            return None

        try:
            await self._coordinator.put(key, record)
            await self._coordinator.release_lock(key)
        except TicketClaimError as e:
            logger.error(f"Failed to store notification for ticket {ticket_id} at {key}: {e}")
            return None

        logger.info(f"Stored notification for ticket {ticket_id} at {key}")
        return record

    async def load_ticket_notification(
        self,
        chat_id: str,
        notification_message_id: str,
    ) -> Optional[TicketClaimRecord]:
        """Read the record for a notification, or None if it is missing or unreadable."""
        try:
            key = ClaimKey(chat_id=chat_id, notification_message_id=notification_message_id)
            return await self._coordinator.get(key)
        except ValidationError:
            return None
        except TicketClaimError as e:
            logger.warning(f"Could not load notification {chat_id}:{notification_message_id}: {e}")
            return None

    async def claim_ticket_notification(
        self,
        chat_id: str,
        notification_message_id: str,
        claimant_identity: str,
        claimant_display_name: str,
        previous_state: Optional[PreviousState] = None,
    ) -> ClaimResult:
        """Claim a notification. See ``ClaimProtocol.execute``."""
        key = self._key_or_failure(chat_id, notification_message_id)
        if isinstance(key, ClaimFailure):
            return key
        if not claimant_identity:
            return ClaimFailure(reason=FailureReason.INVALID_CLAIMANT)
        return await self._claim.execute(
            key, claimant_identity, claimant_display_name, previous_state
        )

    async def unclaim_ticket_notification(
        self,
        chat_id: str,
        notification_message_id: str,
        claimant_identity: str,
    ) -> UnclaimResult:
        """Release a claim. See ``UnclaimProtocol.execute``."""
        key = self._key_or_failure(chat_id, notification_message_id)
        if isinstance(key, ClaimFailure):
            return key
        if not claimant_identity:
            return ClaimFailure(reason=FailureReason.INVALID_CLAIMANT)
        return await self._unclaim.execute(key, claimant_identity)

    @staticmethod
    def _key_or_failure(chat_id: str, notification_message_id: str):
        """An empty id can never match a stored record."""
        try:
            return ClaimKey(chat_id=chat_id, notification_message_id=notification_message_id)
        except ValidationError as e:
            return ClaimFailure(reason=FailureReason.NOT_FOUND, detail=str(e))

    async def close(self) -> None:
        """Close the storage coordinator."""
        await self._coordinator.close()

    async def __aenter__(self) -> "TicketClaimService":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()


def build_service(settings: Optional[Settings] = None) -> TicketClaimService:
    """
    Build the process-wide claim service.

    Args:
        settings: Settings to read. Defaults to the cached settings.

    Returns:
        Service wired to the coordinator selected for this process.
    """
    settings = settings or get_settings()
    return TicketClaimService(build_coordinator(settings), settings=settings)
