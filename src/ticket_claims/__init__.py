"""
Ticket Claims - claim coordination for helpdesk ticket notifications.

Guarantees a single winner when several technicians claim the same ticket
notification from independent bot processes sharing one Redis, and lets only
the current owner release the claim.
"""

from .contracts import (
    ClaimFailure,
    ClaimKey,
    ClaimSuccess,
    FailureReason,
    PreviousState,
    TicketClaimRecord,
    UnclaimSuccess,
)
from .service import TicketClaimService, build_service

__version__ = "0.1.0"

__all__ = [
    "ClaimFailure",
    "ClaimKey",
    "ClaimSuccess",
    "FailureReason",
    "PreviousState",
    "TicketClaimRecord",
    "UnclaimSuccess",
    "TicketClaimService",
    "build_service",
]
