"""Contract definitions for claim records and operation results."""

from .records import (
    LOCK_KEY_PREFIX,
    RECORD_KEY_PREFIX,
    ClaimKey,
    PreviousState,
    TicketClaimRecord,
    utc_now,
)
from .results import (
    ClaimFailure,
    ClaimResult,
    ClaimSuccess,
    FailureReason,
    UnclaimResult,
    UnclaimSuccess,
)

__all__ = [
    # Records
    "LOCK_KEY_PREFIX",
    "RECORD_KEY_PREFIX",
    "ClaimKey",
    "PreviousState",
    "TicketClaimRecord",
    "utc_now",
    # Results
    "ClaimFailure",
    "ClaimResult",
    "ClaimSuccess",
    "FailureReason",
    "UnclaimResult",
    "UnclaimSuccess",
]
