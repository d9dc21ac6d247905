"""
Claim protocol - first-claim exclusivity for a ticket notification.

The claim lock's atomic create-if-absent is the single point of
serialization: only the caller that creates it may stamp the record.
"""

from datetime import datetime
from typing import Callable, Optional, Tuple, Union

from loguru import logger
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_fixed

from .base import BaseProtocol, failure_from_error
from ..config import get_settings
from ..contracts import (
    ClaimFailure,
    ClaimKey,
    ClaimResult,
    ClaimSuccess,
    FailureReason,
    PreviousState,
    TicketClaimRecord,
    utc_now,
)
from ..errors import StorageError, TicketClaimError
from ..storage import StorageCoordinator
from ..utils import latency_log

RACE_RELOAD_ATTEMPTS = 5
RACE_RELOAD_WAIT_SECONDS = 0.05

RaceView = Tuple[Union[TicketClaimRecord, ClaimFailure], Optional[str]]


def _winner_pending(view: RaceView) -> bool:
    """The lock is held but the winner's record write has not landed yet."""
    record, holder = view
    return isinstance(record, TicketClaimRecord) and not record.claimed and holder is not None


class ClaimProtocol(BaseProtocol):
    """Claims a ticket notification for one technician."""

    def __init__(
        self,
        coordinator: StorageCoordinator,
        lock_ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
        debug_attempts: Optional[bool] = None,
        race_reload_attempts: int = RACE_RELOAD_ATTEMPTS,
        race_reload_wait_seconds: float = RACE_RELOAD_WAIT_SECONDS,
    ):
        super().__init__(coordinator, debug_attempts=debug_attempts)
        self._clock = clock
        self._lock_ttl_seconds = lock_ttl_seconds or get_settings().CLAIM_LOCK_TTL_SECONDS
        self._race_reload_attempts = race_reload_attempts
        self._race_reload_wait_seconds = race_reload_wait_seconds

    async def execute(
        self,
        key: ClaimKey,
        claimant_identity: str,
        claimant_display_name: str,
        previous_state: Optional[PreviousState] = None,
    ) -> ClaimResult:
        """
        Claim the notification at ``key``.

        Args:
            key: Claim key.
            claimant_identity: Identity of the technician claiming.
            claimant_display_name: Name shown for the claimant.
            previous_state: Ticket state before the claim, kept only if the
                record has no snapshot yet.

        Returns:
            ClaimSuccess with ``was_claimed=False`` for the winner,
            ``was_claimed=True`` (naming the winner) for everyone else, or a
            ClaimFailure.
        """
        self._log_attempt("claim", key, claimant_identity)
        try:
            with latency_log("Ticket claim", key=str(key)):
                return await self._claim(
                    key, claimant_identity, claimant_display_name, previous_state
                )
        except TicketClaimError as e:
            failure = failure_from_error(e)
            logger.warning(f"Claim of {key} by {claimant_identity} failed: {failure.reason.value}")
            return failure

    async def _claim(
        self,
        key: ClaimKey,
        claimant_identity: str,
        claimant_display_name: str,
        previous_state: Optional[PreviousState],
        retry_free_lock: bool = True,
    ) -> ClaimResult:
        current = await self._resolve(key)
        if isinstance(current, ClaimFailure):
            return current

        if current.claimed:
            logger.info(f"{key} already claimed by {current.claimed_by_identity}")
            return ClaimSuccess(record=current, was_claimed=True)

        acquired = await self._coordinator.acquire_lock(
            key, claimant_identity, self._lock_ttl_seconds
        )
        if not acquired:
            latest, holder = await self._await_winner(key)
            if isinstance(latest, ClaimFailure):
                return latest
            if latest.claimed:
                logger.info(f"{claimant_identity} lost the claim race for {key}")
                return ClaimSuccess(record=latest, was_claimed=True)
            if holder is not None:
                # Winner still has not written; report it from the lock.
                logger.warning(
                    f"Claim record for {key} not yet written by lock holder {holder}"
                )
                pending = latest.claimed_by(holder, holder, claimed_at=self._clock())
                return ClaimSuccess(record=pending, was_claimed=True)
            if retry_free_lock:
                logger.info(f"Claim lock for {key} was released by a failed claim, retrying")
                return await self._claim(
                    key,
                    claimant_identity,
                    claimant_display_name,
                    previous_state,
                    retry_free_lock=False,
                )
            return ClaimFailure(
                reason=FailureReason.STORAGE_ERROR,
                detail=f"Claim lock for {key} kept changing hands without a claim",
            )

        # From here on this call holds the lock.
        try:
            latest = await self._coordinator.get(key)
            if latest is None:
                await self._coordinator.release_lock(key)
                return ClaimFailure(reason=FailureReason.NOT_FOUND)
            if latest.claimed:
                await self._coordinator.release_lock(key)
                logger.info(f"{key} was claimed by {latest.claimed_by_identity} before the lock")
                return ClaimSuccess(record=latest, was_claimed=True)

            updated = latest.claimed_by(
                claimant_identity,
                claimant_display_name,
                claimed_at=self._clock(),
                previous_state=previous_state,
            )
            await self._coordinator.put(key, updated)
        except TicketClaimError:
            await self._release_after_failure(key)
            raise

        logger.info(f"Ticket {updated.ticket_id} ({key}) claimed by {claimant_identity}")
        return ClaimSuccess(record=updated, was_claimed=False)

    async def _await_winner(self, key: ClaimKey) -> RaceView:
        """Reload until the lock holder's claim is visible or attempts run out."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._race_reload_attempts),
            wait=wait_fixed(self._race_reload_wait_seconds),
            retry=retry_if_result(_winner_pending),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(self._race_view, key)

    async def _race_view(self, key: ClaimKey) -> RaceView:
        latest = await self._resolve(key)
        if isinstance(latest, ClaimFailure) or latest.claimed:
            return latest, None
        return latest, await self._coordinator.lock_holder(key)

    async def _release_after_failure(self, key: ClaimKey) -> None:
        """Best-effort lock release so a failed claim does not block the key until expiry."""
        try:
            await self._coordinator.release_lock(key)
        except StorageError as e:
            logger.error(
                f"Could not release claim lock for {key} after a failed claim, "
                f"it expires in {self._lock_ttl_seconds}s: {e}"
            )
