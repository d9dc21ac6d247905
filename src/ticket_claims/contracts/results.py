"""
Result contracts returned by the claim and unclaim operations.

Every outcome is a value: callers branch on ``ok`` and ``reason`` instead of
catching exceptions.
"""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from .records import TicketClaimRecord


class FailureReason(str, Enum):
    """Why an operation did not produce a record."""

    NOT_FOUND = "not_found"
    INVALID_RECORD = "invalid_record"
    STORAGE_ERROR = "storage_error"
    NOT_CLAIMED = "not_claimed"
    NOT_CLAIMER = "not_claimer"
    INVALID_CLAIMANT = "invalid_claimant"


_REASON_TEXT = {
    FailureReason.NOT_FOUND: "Ticket notification was not found.",
    FailureReason.INVALID_RECORD: "Ticket notification record is invalid.",
    FailureReason.STORAGE_ERROR: "Ticket notification storage error.",
    FailureReason.NOT_CLAIMED: "Ticket is not currently claimed.",
    FailureReason.NOT_CLAIMER: "Ticket was claimed by another technician.",
    FailureReason.INVALID_CLAIMANT: "Claimant identity is missing.",
}


class ClaimSuccess(BaseModel):
    """Claim completed; ``was_claimed`` is True when someone already owned the ticket."""

    ok: Literal[True] = True
    record: TicketClaimRecord = Field(..., description="Record as seen after the claim attempt")
    was_claimed: bool = Field(..., description="False only for the caller that won the claim")

    @property
    def claimed_by_identity(self) -> Optional[str]:
        return self.record.claimed_by_identity


class UnclaimSuccess(BaseModel):
    """Unclaim ran; ``was_unclaimed`` is False when a concurrent writer got there first."""

    ok: Literal[True] = True
    record: TicketClaimRecord = Field(..., description="Latest record observed")
    was_unclaimed: bool = Field(..., description="True when this call released the claim")


class ClaimFailure(BaseModel):
    """Operation failed without mutating the record."""

    ok: Literal[False] = False
    reason: FailureReason = Field(..., description="Failure category")
    detail: Optional[str] = Field(default=None, description="Underlying error message")
    endpoint: Optional[str] = Field(default=None, description="Storage endpoint involved")

    def describe(self) -> str:
        """Human-readable reason suitable for a chat reply."""
        if self.reason == FailureReason.STORAGE_ERROR and self.detail:
            return self.detail
        return _REASON_TEXT[self.reason]


ClaimResult = Union[ClaimSuccess, ClaimFailure]
UnclaimResult = Union[UnclaimSuccess, ClaimFailure]
