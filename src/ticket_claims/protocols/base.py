"""
Base protocol class and shared helpers.
"""

from abc import ABC
from typing import Optional, Union

from loguru import logger

from ..config import get_settings
from ..contracts import (
    ClaimFailure,
    ClaimKey,
    FailureReason,
    TicketClaimRecord,
)
from ..errors import ClaimRejected, InvalidRecordError, StorageError, TicketClaimError
from ..storage import StorageCoordinator


def ownership_rejection(
    record: TicketClaimRecord, claimant_identity: str
) -> Optional[FailureReason]:
    """Why ``claimant_identity`` may not release ``record``, or None if it may."""
    if not record.claimed:
        return FailureReason.NOT_CLAIMED
    if record.claimed_by_identity != claimant_identity:
        return FailureReason.NOT_CLAIMER
    return None


def failure_from_error(error: TicketClaimError) -> ClaimFailure:
    """Map an internal exception onto the result taxonomy."""
    if isinstance(error, StorageError):
        return ClaimFailure(
            reason=FailureReason.STORAGE_ERROR,
            detail=error.message,
            endpoint=error.endpoint,
        )
    if isinstance(error, InvalidRecordError):
        return ClaimFailure(reason=FailureReason.INVALID_RECORD, detail=error.message)
    if isinstance(error, ClaimRejected):
        return ClaimFailure(reason=FailureReason(error.reason))
    return ClaimFailure(reason=FailureReason.STORAGE_ERROR, detail=str(error))


class BaseProtocol(ABC):
    """
    Abstract base class for claim protocols.

    Protocols are written once against ``StorageCoordinator`` and behave the
    same on every backend.
    """

    def __init__(
        self,
        coordinator: StorageCoordinator,
        debug_attempts: Optional[bool] = None,
    ):
        """
        Initialize protocol with dependencies.

        Args:
            coordinator: Storage coordinator shared by all protocols.
            debug_attempts: Log every attempt with its inputs. Defaults to
                the DEBUG_TICKET_REACTIONS setting.
        """
        self._coordinator = coordinator
        if debug_attempts is None:
            debug_attempts = get_settings().DEBUG_TICKET_REACTIONS
        self._debug_attempts = debug_attempts

    async def _resolve(self, key: ClaimKey) -> Union[TicketClaimRecord, ClaimFailure]:
        """Current record for ``key`` or the not_found failure."""
        record = await self._coordinator.get(key)
        if record is None:
            logger.info(f"No ticket notification stored for {key}")
            return ClaimFailure(reason=FailureReason.NOT_FOUND)
        return record

    def _log_attempt(self, event: str, key: ClaimKey, claimant_identity: str) -> None:
        if not self._debug_attempts:
            return
        logger.bind(
            event=event,
            chat_id=key.chat_id,
            notification_message_id=key.notification_message_id,
            claimant=claimant_identity,
            backend=self._coordinator.describe(),
        ).info(f"[ticket-reaction] {event} {key} by {claimant_identity}")
