"""
Claim record contracts and their JSON codec.

Records are stored as camelCase JSON under ``ticket_claim:{chatId}:{messageId}``.
"""

import json
from datetime import datetime, timezone
from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StringConstraints,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..errors import InvalidRecordError

RECORD_KEY_PREFIX = "ticket_claim"
LOCK_KEY_PREFIX = "ticket_claim_lock"

RequiredText = Annotated[str, StringConstraints(strict=True, min_length=1)]
OptionalText = Optional[Annotated[str, StringConstraints(strict=True)]]


def utc_now() -> datetime:
    """Timezone-aware current time used to stamp records."""
    return datetime.now(timezone.utc)


def _describe_errors(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
        for err in error.errors()
    )


class ClaimKey(BaseModel):
    """Identifies one ticket notification: the chat it was posted to and its message id."""

    model_config = ConfigDict(frozen=True)

    chat_id: RequiredText = Field(..., description="Group chat the notification was posted to")
    notification_message_id: RequiredText = Field(..., description="Chat message id of the notification")

    @property
    def record_key(self) -> str:
        return f"{RECORD_KEY_PREFIX}:{self.chat_id}:{self.notification_message_id}"

    @property
    def lock_key(self) -> str:
        return f"{LOCK_KEY_PREFIX}:{self.chat_id}:{self.notification_message_id}"

    def __str__(self) -> str:
        return f"{self.chat_id}:{self.notification_message_id}"


class PreviousState(BaseModel):
    """Ticket-system state captured before the first claim, used for rollback on unclaim."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    status: OptionalText = Field(default=None, description="Ticket status before the claim")
    assignee_tag: OptionalText = Field(default=None, description="Assignee tag field before the claim")
    assignee_name: OptionalText = Field(default=None, description="Assigned technician before the claim")
    group_name: OptionalText = Field(default=None, description="Support group before the claim")


class TicketClaimRecord(BaseModel):
    """Persistent claim state of one ticket notification."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    ticket_id: RequiredText = Field(..., description="Ticket identifier in the ticket system")
    chat_id: RequiredText = Field(..., description="Group chat the notification was posted to")
    notification_message_id: RequiredText = Field(..., description="Chat message id of the notification")
    created_at: datetime = Field(..., description="When the notification was stored")
    claimed: StrictBool = Field(..., description="Whether a technician currently owns the ticket")
    claimed_at: Optional[datetime] = Field(default=None, description="When the current claim was made")
    claimed_by_identity: OptionalText = Field(default=None, description="Identity of the current claimant")
    claimed_by_display_name: OptionalText = Field(default=None, description="Display name of the current claimant")
    previous_state: Optional[PreviousState] = Field(
        default=None,
        description="Snapshot written by the first successful claim",
    )

    @model_validator(mode="after")
    def check_claim_fields(self) -> "TicketClaimRecord":
        """Claim fields are present exactly when the record is claimed."""
        if self.claimed:
            if not self.claimed_by_identity:
                raise ValueError("claimed record has no claimedByIdentity")
        elif (
            self.claimed_at is not None
            or self.claimed_by_identity is not None
            or self.claimed_by_display_name is not None
        ):
            raise ValueError("unclaimed record carries claim fields")
        return self

    @classmethod
    def for_notification(
        cls,
        ticket_id: str,
        key: ClaimKey,
        created_at: Optional[datetime] = None,
    ) -> "TicketClaimRecord":
        """Fresh, unclaimed record for a newly posted notification."""
        return cls(
            ticket_id=ticket_id,
            chat_id=key.chat_id,
            notification_message_id=key.notification_message_id,
            created_at=created_at or utc_now(),
            claimed=False,
        )

    @classmethod
    def from_json(cls, key: str, raw: Union[str, bytes]) -> "TicketClaimRecord":
        """
        Decode a stored payload.

        Args:
            key: Storage key the payload was read from, for diagnostics.
            raw: JSON text as stored.

        Returns:
            The validated record.

        Raises:
            InvalidRecordError: If the payload is not JSON or fails validation.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidRecordError(key, _describe_errors(e)) from e

    def to_json(self) -> str:
        """Encode for storage, omitting absent optional fields.

        Inside ``previousState`` every field is written, so an explicit null
        ("no value before the claim") survives a round trip.
        """
        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if self.previous_state is not None:
            payload["previousState"] = self.previous_state.model_dump(mode="json", by_alias=True)
        return json.dumps(payload, ensure_ascii=False)

    @property
    def key(self) -> ClaimKey:
        return ClaimKey(chat_id=self.chat_id, notification_message_id=self.notification_message_id)

    def claimed_by(
        self,
        identity: str,
        display_name: str,
        claimed_at: datetime,
        previous_state: Optional[PreviousState] = None,
    ) -> "TicketClaimRecord":
        """Copy of this record owned by ``identity``.

        An existing previous-state snapshot always wins over ``previous_state``.
        """
        return self._with_changes(
            claimed=True,
            claimed_at=claimed_at,
            claimed_by_identity=identity,
            claimed_by_display_name=display_name,
            previous_state=self.previous_state or previous_state,
        )

    def released(self) -> "TicketClaimRecord":
        """Copy of this record with the claim cleared and the snapshot kept."""
        return self._with_changes(
            claimed=False,
            claimed_at=None,
            claimed_by_identity=None,
            claimed_by_display_name=None,
        )

    def _with_changes(self, **changes: Any) -> "TicketClaimRecord":
        """Validated copy with ``changes`` applied.

        Raises:
            InvalidRecordError: If the result would break a record invariant.
        """
        data = {**self.model_dump(), **changes}
        try:
            return TicketClaimRecord.model_validate(data)
        except ValidationError as e:
            raise InvalidRecordError(self.key.record_key, _describe_errors(e)) from e
