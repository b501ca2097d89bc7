"""
Receipt Correction Workflow

DESIGN DECISION: A receipt is NEVER saved without the user's verdict.
The parsed candidate is buffered in the session store and only reaches
the ledger after an explicit confirmation.

State machine, per chat user:

    NONE --photo parsed--> AWAITING_CONFIRMATION
    AWAITING_CONFIRMATION --affirmative--> NONE (committed)
    AWAITING_CONFIRMATION --negative--> AWAITING_CORRECTION
    AWAITING_CORRECTION --revision ok--> AWAITING_CONFIRMATION
    any pending state --cancel--> NONE

A new photo replaces whatever candidate was pending.

CONCURRENCY: A per-user asyncio lock guards each state transition. The
lock is never held across an AI call. A revision result is discarded if
the candidate it was based on changed while the model was thinking.
Confirm takes the candidate out of the store before committing, so a
concurrent confirm and reject can never both act on it.
"""

import asyncio
import re
import weakref
from datetime import timedelta
from typing import Optional
from uuid import UUID

import structlog

from catatuang.audit import AuditLogger, create_correlation_id
from catatuang.clock import FixedOffsetClock
from catatuang.config import AppSettings, get_settings
from catatuang.ledger import RECEIPT_IMAGE_INPUT, TransactionEngine
from catatuang.models.workflow import (
    PendingCandidate,
    ReceiptOutcome,
    ReceiptOutcomeKind,
    ReceiptState,
)
from catatuang.services.ai import TransactionParser
from catatuang.services.image import UnreadableImageError, inspect_receipt_image
from catatuang.workflow.quota import QuotaService
from catatuang.workflow.sessions import SessionStore


logger = structlog.get_logger(__name__)

CONFIRM_PATTERN = re.compile(r"^(benar|ya|oke|ok|setuju|sip)$", re.IGNORECASE)
REJECT_PATTERN = re.compile(r"^(salah|tidak|nggak|gak|no)$", re.IGNORECASE)
CANCEL_PATTERN = re.compile(r"^(batal|cancel|stop)$", re.IGNORECASE)


def _session_key(chat_user_id: str) -> str:
    return f"receipt:{chat_user_id}"


class ReceiptWorkflow:
    """
    Drives one receipt from photo to ledger row.

    Every method returns a `ReceiptOutcome` describing what happened;
    "nothing pending" and "quota exhausted" are outcomes, not errors.
    """

    def __init__(
        self,
        sessions: SessionStore,
        parser: TransactionParser,
        engine: TransactionEngine,
        quota: QuotaService,
        clock: FixedOffsetClock,
        settings: Optional[AppSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._sessions = sessions
        self._parser = parser
        self._engine = engine
        self._quota = quota
        self._clock = clock
        self._settings = settings or get_settings().app
        self._audit_logger = audit_logger
        # Entries vanish once no coroutine holds or waits on the lock.
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, chat_user_id: str) -> asyncio.Lock:
        lock = self._locks.get(chat_user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_user_id] = lock
        return lock

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    def pending(self, chat_user_id: str) -> Optional[PendingCandidate]:
        """The live candidate for a user. Expired candidates are dropped here."""
        pending: Optional[PendingCandidate] = self._sessions.get(_session_key(chat_user_id))
        if pending is None:
            return None

        ttl = timedelta(minutes=self._settings.pending_receipt_ttl_minutes)
        if self._clock.now() - pending.created_at > ttl:
            self._sessions.delete(_session_key(chat_user_id))
            logger.info("pending_receipt_expired", chat_user_id=chat_user_id,
                        candidate_id=pending.candidate_id)
            return None
        return pending

    def state(self, chat_user_id: str) -> ReceiptState:
        pending = self.pending(chat_user_id)
        return pending.stage if pending else ReceiptState.NONE

    # -------------------------------------------------------------------------
    # Photo intake
    # -------------------------------------------------------------------------

    async def start_from_photo(
        self,
        chat_user_id: str,
        owner_id: str,
        image_bytes: bytes,
        source_message_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ReceiptOutcome:
        """
        Parse a receipt photo into a candidate awaiting confirmation.

        The receipt quota is checked first and only consumed once the
        parse succeeds. On any failure the previous state is kept.
        """
        correlation_id = correlation_id or create_correlation_id()

        quota = await self._quota.get_receipt_quota(owner_id)
        if not quota.ok:
            return ReceiptOutcome(
                kind=ReceiptOutcomeKind.QUOTA_EXCEEDED,
                state=self.state(chat_user_id),
                quota=quota,
            )

        try:
            image = inspect_receipt_image(image_bytes, self._settings)
        except UnreadableImageError as e:
            logger.info("receipt_image_rejected", chat_user_id=chat_user_id, reason=str(e))
            return ReceiptOutcome(
                kind=ReceiptOutcomeKind.INVALID_IMAGE,
                state=self.state(chat_user_id),
                message=str(e),
            )

        candidate = await self._parser.parse_image(image.content, image.mime_type)
        if candidate is None:
            if self._audit_logger:
                await self._audit_logger.log_receipt_parse_failed(
                    owner_id, "parser returned no candidate", correlation_id
                )
            return ReceiptOutcome(
                kind=ReceiptOutcomeKind.PARSE_FAILED,
                state=self.state(chat_user_id),
            )

        consumed = await self._quota.consume_receipt_quota(owner_id)
        if not consumed.ok:
            return ReceiptOutcome(
                kind=ReceiptOutcomeKind.QUOTA_EXCEEDED,
                state=self.state(chat_user_id),
                quota=consumed,
            )

        pending = PendingCandidate(
            chat_user_id=chat_user_id,
            owner_id=owner_id,
            candidate=candidate,
            stage=ReceiptState.AWAITING_CONFIRMATION,
            created_at=self._clock.now(),
            source_message_id=source_message_id,
        )
        async with self._lock_for(chat_user_id):
            self._sessions.set(_session_key(chat_user_id), pending)

        if self._audit_logger:
            await self._audit_logger.log_receipt_parsed(
                owner_id, pending.candidate_id, candidate.confidence, correlation_id
            )
        return ReceiptOutcome(
            kind=ReceiptOutcomeKind.PREVIEW,
            state=ReceiptState.AWAITING_CONFIRMATION,
            candidate=candidate,
            quota=consumed,
            source_message_id=source_message_id,
        )

    # -------------------------------------------------------------------------
    # Text follow-ups
    # -------------------------------------------------------------------------

    async def handle_reply(self, chat_user_id: str, text: str) -> Optional[ReceiptOutcome]:
        """
        Route a text message to the pending receipt, if there is one.

        Returns:
            None when nothing is pending, so the caller can treat the
            text as a normal transaction message
        """
        pending = self.pending(chat_user_id)
        if pending is None:
            return None

        reply = text.strip()
        if CANCEL_PATTERN.match(reply):
            return await self.cancel(chat_user_id)

        if pending.stage == ReceiptState.AWAITING_CONFIRMATION:
            if CONFIRM_PATTERN.match(reply):
                return await self.confirm(chat_user_id)
            if REJECT_PATTERN.match(reply):
                return await self.reject(chat_user_id)
            return ReceiptOutcome(
                kind=ReceiptOutcomeKind.REPROMPT,
                state=ReceiptState.AWAITING_CONFIRMATION,
                candidate=pending.candidate,
            )

        return await self._revise(chat_user_id, pending, reply)

    async def _revise(
        self,
        chat_user_id: str,
        pending: PendingCandidate,
        feedback: str,
    ) -> ReceiptOutcome:
        correlation_id = create_correlation_id()
        revised = await self._parser.revise(pending.candidate, feedback)

        async with self._lock_for(chat_user_id):
            current = self.pending(chat_user_id)
            if current is None or current.candidate_id != pending.candidate_id:
                logger.info("revision_discarded", chat_user_id=chat_user_id,
                            candidate_id=pending.candidate_id)
                return ReceiptOutcome(
                    kind=ReceiptOutcomeKind.NOTHING_PENDING,
                    state=current.stage if current else ReceiptState.NONE,
                    message="The receipt changed while the correction was processed",
                )

            if revised is None:
                succeeded = False
                outcome = ReceiptOutcome(
                    kind=ReceiptOutcomeKind.REVISION_FAILED,
                    state=ReceiptState.AWAITING_CORRECTION,
                    candidate=current.candidate,
                )
            else:
                succeeded = True
                replacement = PendingCandidate(
                    chat_user_id=chat_user_id,
                    owner_id=current.owner_id,
                    candidate=revised,
                    stage=ReceiptState.AWAITING_CONFIRMATION,
                    created_at=self._clock.now(),
                    source_message_id=current.source_message_id,
                )
                self._sessions.set(_session_key(chat_user_id), replacement)
                outcome = ReceiptOutcome(
                    kind=ReceiptOutcomeKind.PREVIEW,
                    state=ReceiptState.AWAITING_CONFIRMATION,
                    candidate=revised,
                    source_message_id=current.source_message_id,
                )

        if self._audit_logger:
            await self._audit_logger.log_candidate_revised(
                pending.owner_id, pending.candidate_id, succeeded, correlation_id
            )
        return outcome

    # -------------------------------------------------------------------------
    # Verdicts
    # -------------------------------------------------------------------------

    async def confirm(self, chat_user_id: str) -> ReceiptOutcome:
        """Commit the pending candidate. Only legal while awaiting confirmation."""
        async with self._lock_for(chat_user_id):
            pending = self.pending(chat_user_id)
            if pending is None or pending.stage != ReceiptState.AWAITING_CONFIRMATION:
                return self._nothing_pending(pending)
            self._sessions.delete(_session_key(chat_user_id))

        correlation_id = create_correlation_id()
        try:
            created = await self._engine.record_candidate(
                pending.owner_id,
                pending.candidate,
                RECEIPT_IMAGE_INPUT,
                correlation_id=correlation_id,
            )
        except Exception:
            # Put the candidate back unless a newer one arrived meanwhile
            async with self._lock_for(chat_user_id):
                if self.pending(chat_user_id) is None:
                    self._sessions.set(_session_key(chat_user_id), pending)
            raise

        if self._audit_logger:
            await self._audit_logger.log_user_confirmed(
                pending.owner_id, created.transaction.id, pending.candidate_id, correlation_id
            )
        return ReceiptOutcome(
            kind=ReceiptOutcomeKind.COMMITTED,
            state=ReceiptState.NONE,
            candidate=pending.candidate,
            created=created,
            source_message_id=pending.source_message_id,
        )

    async def reject(self, chat_user_id: str) -> ReceiptOutcome:
        """Ask for a correction. Only legal while awaiting confirmation."""
        async with self._lock_for(chat_user_id):
            pending = self.pending(chat_user_id)
            if pending is None or pending.stage != ReceiptState.AWAITING_CONFIRMATION:
                return self._nothing_pending(pending)
            self._sessions.set(
                _session_key(chat_user_id),
                pending.model_copy(update={"stage": ReceiptState.AWAITING_CORRECTION}),
            )

        if self._audit_logger:
            await self._audit_logger.log_user_rejected(pending.owner_id, pending.candidate_id)
        return ReceiptOutcome(
            kind=ReceiptOutcomeKind.AWAITING_CORRECTION,
            state=ReceiptState.AWAITING_CORRECTION,
            candidate=pending.candidate,
        )

    async def cancel(self, chat_user_id: str) -> ReceiptOutcome:
        async with self._lock_for(chat_user_id):
            pending = self.pending(chat_user_id)
            if pending is None:
                return self._nothing_pending(None)
            self._sessions.delete(_session_key(chat_user_id))

        if self._audit_logger:
            await self._audit_logger.log_user_cancelled(pending.owner_id, pending.candidate_id)
        return ReceiptOutcome(kind=ReceiptOutcomeKind.CANCELLED, state=ReceiptState.NONE)

    @staticmethod
    def _nothing_pending(pending: Optional[PendingCandidate]) -> ReceiptOutcome:
        return ReceiptOutcome(
            kind=ReceiptOutcomeKind.NOTHING_PENDING,
            state=pending.stage if pending else ReceiptState.NONE,
        )
