"""
Workflow Models for Catatuang

Ephemeral, per-chat-user state and the typed outcomes the chat layer
renders. Nothing here is persisted to the ledger.

DESIGN DECISION: Every workflow step returns an outcome value with an
explicit kind instead of raising. "Nothing pending" or "quota exhausted"
are normal chat situations, not faults.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from catatuang.models.ledger import (
    CreatedTransaction,
    ParsedCandidate,
    QuotaResult,
    Transaction,
    ensure_utc,
    new_id,
    utc_now,
)


class ReceiptState(str, Enum):
    """States of the receipt correction state machine."""
    NONE = "none"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_CORRECTION = "awaiting_correction"


class PendingCandidate(BaseModel):
    """
    A parsed receipt waiting for the user's verdict.

    `candidate_id` changes every time the candidate is replaced
    (new photo or accepted revision), so a slow revision can tell
    whether its input is still current.
    """

    candidate_id: str = Field(default_factory=new_id)
    chat_user_id: str
    owner_id: str
    candidate: ParsedCandidate
    stage: ReceiptState = ReceiptState.AWAITING_CONFIRMATION
    created_at: datetime = Field(default_factory=utc_now)
    source_message_id: Optional[str] = None

    @field_validator('created_at')
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator('stage')
    @classmethod
    def validate_stage(cls, v: ReceiptState) -> ReceiptState:
        if v == ReceiptState.NONE:
            raise ValueError("A pending candidate cannot be in the NONE state")
        return v


class ReceiptOutcomeKind(str, Enum):
    """What happened after a receipt workflow input."""
    PREVIEW = "preview"                          # candidate shown, awaiting verdict
    COMMITTED = "committed"                      # candidate saved to the ledger
    AWAITING_CORRECTION = "awaiting_correction"  # user said the guess is wrong
    CANCELLED = "cancelled"
    REPROMPT = "reprompt"                        # unrecognized reply while confirming
    REVISION_FAILED = "revision_failed"
    PARSE_FAILED = "parse_failed"
    INVALID_IMAGE = "invalid_image"
    QUOTA_EXCEEDED = "quota_exceeded"
    NOTHING_PENDING = "nothing_pending"


class ReceiptOutcome(BaseModel):
    """Result of one receipt workflow step."""

    kind: ReceiptOutcomeKind
    state: ReceiptState
    candidate: Optional[ParsedCandidate] = None
    created: Optional[CreatedTransaction] = None
    quota: Optional[QuotaResult] = None
    source_message_id: Optional[str] = None
    message: Optional[str] = None


class ReplyDeleteStatus(str, Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"              # no resolution method matched
    ALREADY_DELETED = "already_deleted"  # resolved, but the row is gone


class ReplyDeleteResult(BaseModel):
    status: ReplyDeleteStatus
    transaction_id: Optional[str] = None
    resolved_by: Optional[str] = Field(
        default=None,
        description="Which lookup found the id: message_index, reference_token or raw_input"
    )
    transaction: Optional[Transaction] = None


class BotReply(BaseModel):
    """
    What the chat transport should send back.

    When `track_message` is set the transport reports the sent
    message id through `ChatFlow.register_sent_message`, so a later
    reply to it can delete `transaction_id`.
    """

    text: str
    buttons: list[tuple[str, str]] = Field(
        default_factory=list,
        description="(label, callback data) pairs"
    )
    transaction_id: Optional[str] = None
    track_message: bool = False
