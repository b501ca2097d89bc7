"""
Audit Models for Catatuang

Every ledger mutation and every step of the receipt workflow is logged
for audit purposes, so a balance can always be explained after the fact.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from catatuang.models.ledger import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"
    PRIMARY_ACCOUNT_CREATED = "primary_account_created"
    CATEGORIES_SEEDED = "categories_seeded"

    # Receipt workflow
    RECEIPT_PARSED = "receipt_parsed"
    RECEIPT_PARSE_FAILED = "receipt_parse_failed"
    CANDIDATE_REVISED = "candidate_revised"
    CANDIDATE_REVISION_FAILED = "candidate_revision_failed"
    USER_CONFIRMED = "user_confirmed"
    USER_REJECTED = "user_rejected"
    USER_CANCELLED = "user_cancelled"

    # Chat
    QUOTA_EXCEEDED = "quota_exceeded"
    REPLY_DELETE_UNRESOLVED = "reply_delete_unresolved"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    owner_id: Optional[str] = Field(
        default=None,
        description="Ledger owner the event concerns"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'receipt')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one receipt flow)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(tx, correlation_id)
        event = AuditEventBuilder.user_confirmed(owner_id, tx_id, correlation_id)
    """

    @staticmethod
    def transaction_created(
        owner_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        raw_input: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type} of {amount} recorded",
            details={
                "type": transaction_type,
                "amount": amount,
                "raw_input": raw_input,
            },
        )

    @staticmethod
    def transaction_deleted(
        owner_id: str,
        transaction_id: str,
        amount: str,
        via: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction deleted ({via}), balance restored",
            details={
                "amount": amount,
                "via": via,
            },
            is_user_action=True,
        )

    @staticmethod
    def primary_account_created(
        owner_id: str,
        account_id: str,
        promoted: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PRIMARY_ACCOUNT_CREATED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            description=(
                "Oldest active account promoted to primary"
                if promoted else "Primary account created"
            ),
            details={"promoted": promoted},
        )

    @staticmethod
    def categories_seeded(owner_id: str, inserted: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIES_SEEDED,
            owner_id=owner_id,
            entity_type="category",
            description=f"{inserted} default categories seeded",
            details={"inserted": inserted},
        )

    @staticmethod
    def receipt_parsed(
        owner_id: str,
        candidate_id: str,
        confidence: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_PARSED,
            owner_id=owner_id,
            entity_type="receipt",
            entity_id=candidate_id,
            correlation_id=correlation_id,
            description=f"Receipt parsed with {confidence:.0%} confidence",
            details={"confidence_score": confidence},
            is_user_action=True,
        )

    @staticmethod
    def receipt_parse_failed(
        owner_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_PARSE_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt could not be parsed",
            details={"reason": reason},
        )

    @staticmethod
    def candidate_revised(
        owner_id: str,
        candidate_id: str,
        succeeded: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.CANDIDATE_REVISED
                if succeeded else AuditEventType.CANDIDATE_REVISION_FAILED
            ),
            severity=AuditSeverity.INFO if succeeded else AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="receipt",
            entity_id=candidate_id,
            correlation_id=correlation_id,
            description=(
                "Receipt candidate revised from user feedback"
                if succeeded else "Receipt revision failed"
            ),
            is_user_action=True,
        )

    @staticmethod
    def user_confirmed(
        owner_id: str,
        transaction_id: str,
        candidate_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CONFIRMED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="User confirmed receipt candidate",
            details={"candidate_id": candidate_id},
            is_user_action=True,
        )

    @staticmethod
    def user_rejected(
        owner_id: str,
        candidate_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REJECTED,
            owner_id=owner_id,
            entity_type="receipt",
            entity_id=candidate_id,
            correlation_id=correlation_id,
            description="User rejected receipt candidate",
            is_user_action=True,
        )

    @staticmethod
    def user_cancelled(
        owner_id: str,
        candidate_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CANCELLED,
            owner_id=owner_id,
            entity_type="receipt",
            entity_id=candidate_id,
            correlation_id=correlation_id,
            description="User cancelled receipt workflow",
            is_user_action=True,
        )

    @staticmethod
    def quota_exceeded(
        owner_id: str,
        counter: str,
        limit: int,
        day_key: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUOTA_EXCEEDED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="quota",
            entity_id=f"{counter}:{day_key}",
            description=f"Daily {counter} quota of {limit} exhausted",
            details={"counter": counter, "limit": limit, "day_key": day_key},
            is_user_action=True,
        )

    @staticmethod
    def reply_delete_unresolved(
        owner_id: str,
        replied_message_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLY_DELETE_UNRESOLVED,
            owner_id=owner_id,
            entity_type="message",
            entity_id=replied_message_id,
            description="Reply-to-delete matched no transaction",
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
