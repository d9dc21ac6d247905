"""Exceptions raised inside the claim coordination core.

None of these cross the public service boundary: the protocols translate
them into ``ClaimFailure`` results.
"""

from typing import Optional


class TicketClaimError(Exception):
    """Base class for claim coordination errors."""


class StorageError(TicketClaimError):
    """Raised when the backing store cannot be reached or rejects a command."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint

    def __str__(self) -> str:
        if self.endpoint:
            return f"{self.message} (endpoint {self.endpoint})"
        return self.message


class InvalidRecordError(TicketClaimError):
    """Raised when a stored payload exists but fails schema validation."""

    def __init__(self, key: str, message: str):
        super().__init__(f"Invalid claim record at {key}: {message}")
        self.key = key
        self.message = message


class ClaimRejected(TicketClaimError):
    """Raised by a record mutation to abort an optimistic update without writing.

    ``reason`` is one of the ``FailureReason`` values.
    """

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason
