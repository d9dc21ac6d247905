"""
Unclaim protocol - ownership-checked release of a claim.

Ownership is checked twice: once against the first read, and again inside the
watched transaction against the freshest record.
"""

from typing import Optional

from loguru import logger

from .base import BaseProtocol, failure_from_error, ownership_rejection
from ..contracts import (
    ClaimFailure,
    ClaimKey,
    FailureReason,
    TicketClaimRecord,
    UnclaimResult,
    UnclaimSuccess,
)
from ..errors import ClaimRejected, TicketClaimError
from ..utils import latency_log


class UnclaimProtocol(BaseProtocol):
    """Releases a claim on behalf of its current owner."""

    async def execute(self, key: ClaimKey, claimant_identity: str) -> UnclaimResult:
        """
        Release the claim at ``key``.

        Args:
            key: Claim key.
            claimant_identity: Must match the current claimant.

        Returns:
            UnclaimSuccess (``was_unclaimed`` False when a concurrent writer
            kept winning the transaction) or a ClaimFailure.
        """
        self._log_attempt("unclaim", key, claimant_identity)
        try:
            with latency_log("Ticket unclaim", key=str(key)):
                return await self._unclaim(key, claimant_identity)
        except TicketClaimError as e:
            failure = failure_from_error(e)
            logger.warning(
                f"Unclaim of {key} by {claimant_identity} rejected: {failure.reason.value}"
            )
            return failure

    async def _unclaim(self, key: ClaimKey, claimant_identity: str) -> UnclaimResult:
        current = await self._resolve(key)
        if isinstance(current, ClaimFailure):
            return current

        rejection = ownership_rejection(current, claimant_identity)
        if rejection is not None:
            logger.info(f"Unclaim of {key} by {claimant_identity}: {rejection.value}")
            return ClaimFailure(reason=rejection)

        def release(fresh: Optional[TicketClaimRecord]) -> TicketClaimRecord:
            if fresh is None:
                raise ClaimRejected(FailureReason.NOT_FOUND)
            reason = ownership_rejection(fresh, claimant_identity)
            if reason is not None:
                raise ClaimRejected(reason)
            return fresh.released()

        outcome = await self._coordinator.optimistic_update(key, release, release_lock=True)

        if outcome.record is None:
            return ClaimFailure(reason=FailureReason.NOT_FOUND)

        if not outcome.committed:
            logger.info(f"Unclaim of {key} lost to a concurrent update")
            return UnclaimSuccess(record=outcome.record, was_unclaimed=False)

        logger.info(
            f"Ticket {outcome.record.ticket_id} ({key}) released by {claimant_identity}"
        )
        return UnclaimSuccess(record=outcome.record, was_unclaimed=True)
