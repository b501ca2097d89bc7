"""
Audit Logger

DESIGN DECISION: Every ledger mutation and receipt decision is logged.
This provides:
1. Traceability of every balance change
2. Debugging capability for disputed transactions
3. A record of what the AI proposed versus what the user accepted

The audit logger:
- Is async to not block the chat handler
- Gracefully handles storage failures (logging must never undo a ledger write)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from catatuang.models.audit import AuditEvent, AuditEventBuilder
from catatuang.models.ledger import Transaction
from catatuang.services.storage import AuditStorageInterface, StorageError


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_events table (when storage is configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("catatuang.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except StorageError as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed transaction."""
        await self.log(AuditEventBuilder.transaction_created(
            owner_id=transaction.owner_id,
            transaction_id=transaction.id,
            transaction_type=transaction.type.value,
            amount=str(transaction.amount),
            raw_input=transaction.raw_input,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction: Transaction,
        via: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a deleted transaction."""
        await self.log(AuditEventBuilder.transaction_deleted(
            owner_id=transaction.owner_id,
            transaction_id=transaction.id,
            amount=str(transaction.amount),
            via=via,
            correlation_id=correlation_id,
        ))

    async def log_primary_account_created(
        self,
        owner_id: str,
        account_id: str,
        promoted: bool,
    ) -> None:
        """Log creation or promotion of the primary account."""
        await self.log(AuditEventBuilder.primary_account_created(
            owner_id=owner_id,
            account_id=account_id,
            promoted=promoted,
        ))

    async def log_categories_seeded(self, owner_id: str, inserted: int) -> None:
        """Log default category seeding."""
        await self.log(AuditEventBuilder.categories_seeded(owner_id, inserted))

    async def log_receipt_parsed(
        self,
        owner_id: str,
        candidate_id: str,
        confidence: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a successful receipt parse."""
        await self.log(AuditEventBuilder.receipt_parsed(
            owner_id=owner_id,
            candidate_id=candidate_id,
            confidence=confidence,
            correlation_id=correlation_id,
        ))

    async def log_receipt_parse_failed(
        self,
        owner_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed receipt parse."""
        await self.log(AuditEventBuilder.receipt_parse_failed(
            owner_id=owner_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_candidate_revised(
        self,
        owner_id: str,
        candidate_id: str,
        succeeded: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a candidate revision attempt."""
        await self.log(AuditEventBuilder.candidate_revised(
            owner_id=owner_id,
            candidate_id=candidate_id,
            succeeded=succeeded,
            correlation_id=correlation_id,
        ))

    async def log_user_confirmed(
        self,
        owner_id: str,
        transaction_id: str,
        candidate_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log user confirmation."""
        await self.log(AuditEventBuilder.user_confirmed(
            owner_id=owner_id,
            transaction_id=transaction_id,
            candidate_id=candidate_id,
            correlation_id=correlation_id,
        ))

    async def log_user_rejected(
        self,
        owner_id: str,
        candidate_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log user rejection."""
        await self.log(AuditEventBuilder.user_rejected(
            owner_id=owner_id,
            candidate_id=candidate_id,
            correlation_id=correlation_id,
        ))

    async def log_user_cancelled(
        self,
        owner_id: str,
        candidate_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log user cancellation."""
        await self.log(AuditEventBuilder.user_cancelled(
            owner_id=owner_id,
            candidate_id=candidate_id,
            correlation_id=correlation_id,
        ))

    async def log_quota_exceeded(
        self,
        owner_id: str,
        counter: str,
        limit: int,
        day_key: str,
    ) -> None:
        """Log a refused quota consume."""
        await self.log(AuditEventBuilder.quota_exceeded(
            owner_id=owner_id,
            counter=counter,
            limit=limit,
            day_key=day_key,
        ))

    async def log_reply_delete_unresolved(
        self,
        owner_id: str,
        replied_message_id: Optional[str],
    ) -> None:
        """Log a reply-to-delete that matched nothing."""
        await self.log(AuditEventBuilder.reply_delete_unresolved(owner_id, replied_message_id))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a receipt upload).
    Pass it through all subsequent operations.
    """
    return uuid4()
