"""
Main Orchestrator for Catatuang

This module ties together all the components and defines the
end-to-end flows for:
1. Chat (text / photo / command -> workflow or engine -> reply text)
2. Dashboard (period snapshot, quick-add transaction)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No receipt persists without the user's confirmation
- Pending receipt follow-ups are handled before plain-text parsing
- Every reply is computed from stored data, never from the model alone

The chat transport is outside this module. Flows receive plain event
fields and return a `BotReply`; the transport sends it and reports the
sent message id back through `ChatFlow.register_sent_message`.
"""

from typing import Optional, Union
from uuid import UUID

import structlog

from catatuang.audit import AuditLogger, create_correlation_id
from catatuang.clock import FixedOffsetClock
from catatuang.config import AppSettings, Settings, get_settings, validate_all_settings
from catatuang.ledger import TransactionEngine
from catatuang.models.ledger import (
    Account,
    CreatedTransaction,
    DashboardSnapshot,
    DateField,
    ManualTransactionInput,
)
from catatuang.models.workflow import (
    BotReply,
    ReceiptOutcome,
    ReceiptOutcomeKind,
    ReplyDeleteStatus,
)
from catatuang.queries import PeriodAggregator
from catatuang.services.ai import GeminiTransactionParser, TransactionParser
from catatuang.services.storage import (
    Database,
    SqlAuditStorage,
    SqlLedgerStorage,
    SqlUsageStorage,
)
from catatuang.utils import parse_rupiah, replies
from catatuang.validation import ManualTransactionValidator
from catatuang.workflow import (
    InMemorySessionStore,
    MessageIndex,
    QuotaService,
    ReceiptWorkflow,
    ReplyDeleteResolver,
    SessionStore,
)


logger = structlog.get_logger(__name__)


class ChatFlow:
    """
    Orchestrates the chat bot.

    Text dispatch order:
    1. Pending receipt follow-up (confirm / reject / correction / cancel)
    2. Reply-to-delete (a delete keyword replying to a message)
    3. Daily chat quota
    4. AI text parse
    5. Record to the primary account

    Unexpected failures are logged and answered with a generic
    "please try again"; expected outcomes get specific replies.
    """

    def __init__(
        self,
        engine: TransactionEngine,
        aggregator: PeriodAggregator,
        receipts: ReceiptWorkflow,
        reply_delete: ReplyDeleteResolver,
        quota: QuotaService,
        index: MessageIndex,
        parser: TransactionParser,
        clock: FixedOffsetClock,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._engine = engine
        self._aggregator = aggregator
        self._receipts = receipts
        self._reply_delete = reply_delete
        self._quota = quota
        self._index = index
        self._parser = parser
        self._clock = clock
        self._audit_logger = audit_logger

    async def handle_text(
        self,
        chat_user_id: str,
        owner_id: Optional[str],
        text: str,
        message_id: Optional[str] = None,
        reply_to_message_id: Optional[str] = None,
        reply_to_text: Optional[str] = None,
    ) -> BotReply:
        """
        Handle a plain text message.

        Args:
            chat_user_id: Stable chat-platform user id
            owner_id: Linked ledger owner, None if the chat is not linked
            text: Message text
            message_id: Id of this message (indexed for reply-to-delete)
            reply_to_message_id: Id of the message this one replies to
            reply_to_text: Text of the replied message, if any
        """
        correlation_id = create_correlation_id()
        try:
            outcome = await self._receipts.handle_reply(chat_user_id, text)
            if outcome is not None:
                return self._receipt_reply(chat_user_id, outcome)

            if owner_id is None:
                return BotReply(text=replies.NOT_LINKED)

            if reply_to_message_id is not None and self._reply_delete.is_delete_keyword(text):
                return await self._delete_from_reply(
                    chat_user_id, owner_id, reply_to_message_id, reply_to_text
                )

            quota = await self._quota.consume_chat_quota(owner_id)
            if not quota.ok:
                return BotReply(text=replies.chat_quota_exceeded(quota.limit))

            candidate = await self._parser.parse_text(text)
            if candidate is None:
                return BotReply(text=replies.TEXT_NOT_UNDERSTOOD)

            created = await self._engine.record_candidate(
                owner_id, candidate, raw_input=text, correlation_id=correlation_id
            )
            if message_id is not None:
                self._index.register(chat_user_id, message_id, created.transaction.id)

            return BotReply(
                text=replies.transaction_recorded(
                    created.transaction, candidate, created.updated_balance
                ),
                transaction_id=created.transaction.id,
                track_message=True,
            )
        except Exception as e:
            return await self._failure("handle_text", e, correlation_id)

    async def handle_photo(
        self,
        chat_user_id: str,
        owner_id: Optional[str],
        image_bytes: bytes,
        message_id: Optional[str] = None,
    ) -> BotReply:
        """Start the receipt workflow from a photo."""
        correlation_id = create_correlation_id()
        try:
            if owner_id is None:
                return BotReply(text=replies.NOT_LINKED)
            outcome = await self._receipts.start_from_photo(
                chat_user_id,
                owner_id,
                image_bytes,
                source_message_id=message_id,
                correlation_id=correlation_id,
            )
            return self._receipt_reply(chat_user_id, outcome)
        except Exception as e:
            return await self._failure("handle_photo", e, correlation_id)

    async def handle_receipt_button(self, chat_user_id: str, data: str) -> BotReply:
        """Inline button callbacks: `receipt_confirm` / `receipt_reject`."""
        correlation_id = create_correlation_id()
        try:
            if data == "receipt_confirm":
                outcome = await self._receipts.confirm(chat_user_id)
            elif data == "receipt_reject":
                outcome = await self._receipts.reject(chat_user_id)
            else:
                return BotReply(text=replies.NO_RECEIPT_PENDING)
            return self._receipt_reply(chat_user_id, outcome)
        except Exception as e:
            return await self._failure("handle_receipt_button", e, correlation_id)

    async def handle_command(
        self,
        chat_user_id: str,
        owner_id: Optional[str],
        command: str,
    ) -> BotReply:
        """Slash commands: start, bantuan, saldo, riwayat, ringkasan, hapus."""
        correlation_id = create_correlation_id()
        try:
            name = command.strip().lstrip("/").split("@")[0].lower()
            if name == "bantuan":
                return BotReply(text=replies.help_message(self._quota.receipt_limit))
            if name == "start":
                if owner_id is None:
                    return BotReply(text=f"{replies.welcome_message()}\n\n{replies.NOT_LINKED}")
                return BotReply(text=replies.welcome_message())

            if owner_id is None:
                return BotReply(text=replies.NOT_LINKED)

            if name == "saldo":
                balance = await self._aggregator.total_balance(owner_id)
                return BotReply(text=replies.balance_message(balance.total))

            if name == "riwayat":
                transactions = await self._aggregator.today_transactions(owner_id)
                summary = await self._aggregator.today_summary(owner_id, DateField.CREATED)
                balance = await self._aggregator.total_balance(owner_id)
                return BotReply(text=replies.history_message(
                    self._clock.civil_date(), summary, transactions, balance.total
                ))

            if name == "ringkasan":
                today = self._clock.civil_date()
                summary = await self._aggregator.month_summary(
                    owner_id, today.year, today.month, DateField.EFFECTIVE
                )
                balance = await self._aggregator.total_balance(owner_id)
                return BotReply(text=replies.month_summary_message(
                    today.year, today.month, summary, balance.total
                ))

            if name == "hapus":
                deleted = await self._engine.delete_most_recent(owner_id, correlation_id)
                if deleted is None:
                    return BotReply(text=replies.NOTHING_TO_DELETE)
                return BotReply(text=replies.transaction_deleted(deleted))

            return BotReply(text=replies.UNKNOWN_COMMAND)
        except Exception as e:
            return await self._failure("handle_command", e, correlation_id)

    def register_sent_message(self, chat_user_id: str, message_id: str, transaction_id: str) -> None:
        """Called by the transport after sending a reply with `track_message` set."""
        self._index.register(chat_user_id, message_id, transaction_id)

    async def _delete_from_reply(
        self,
        chat_user_id: str,
        owner_id: str,
        reply_to_message_id: str,
        reply_to_text: Optional[str],
    ) -> BotReply:
        result = await self._reply_delete.delete_from_reply(
            chat_user_id, owner_id, reply_to_message_id, reply_to_text
        )
        if result.status == ReplyDeleteStatus.NOT_FOUND:
            return BotReply(text=replies.REPLY_DELETE_NOT_FOUND)
        if result.status == ReplyDeleteStatus.ALREADY_DELETED:
            return BotReply(text=replies.REPLY_DELETE_ALREADY_DELETED)
        return BotReply(text=replies.transaction_deleted(result.transaction))

    def _receipt_reply(self, chat_user_id: str, outcome: ReceiptOutcome) -> BotReply:
        kind = outcome.kind

        if kind == ReceiptOutcomeKind.PREVIEW:
            return BotReply(
                text=replies.receipt_preview(outcome.candidate),
                buttons=list(replies.RECEIPT_BUTTONS),
            )
        if kind == ReceiptOutcomeKind.COMMITTED:
            created: CreatedTransaction = outcome.created
            if outcome.source_message_id is not None:
                self._index.register(chat_user_id, outcome.source_message_id, created.transaction.id)
            return BotReply(
                text=replies.receipt_saved(created.transaction, created.updated_balance),
                transaction_id=created.transaction.id,
                track_message=True,
            )
        if kind == ReceiptOutcomeKind.AWAITING_CORRECTION:
            return BotReply(text=replies.RECEIPT_CORRECTION_PROMPT)
        if kind == ReceiptOutcomeKind.REPROMPT:
            return BotReply(text=replies.RECEIPT_REPROMPT, buttons=list(replies.RECEIPT_BUTTONS))
        if kind == ReceiptOutcomeKind.REVISION_FAILED:
            return BotReply(text=replies.REVISION_FAILED)
        if kind == ReceiptOutcomeKind.CANCELLED:
            return BotReply(text=replies.RECEIPT_CANCELLED)
        if kind == ReceiptOutcomeKind.PARSE_FAILED:
            return BotReply(text=replies.RECEIPT_UNREADABLE)
        if kind == ReceiptOutcomeKind.INVALID_IMAGE:
            return BotReply(text=replies.invalid_image(outcome.message or ""))
        if kind == ReceiptOutcomeKind.QUOTA_EXCEEDED:
            return BotReply(text=replies.receipt_quota_exceeded(outcome.quota.limit))
        return BotReply(text=replies.NO_RECEIPT_PENDING)

    async def _failure(self, operation: str, error: Exception, correlation_id: UUID) -> BotReply:
        logger.exception("chat_flow_failed", operation=operation, correlation_id=str(correlation_id))
        if self._audit_logger:
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"operation": operation},
                correlation_id=correlation_id,
            )
        return BotReply(text=replies.GENERIC_ERROR)


class DashboardFlow:
    """
    Orchestrates the web dashboard.

    Period parameters are clamped, never rejected. Quick-add input is
    validated in full before anything is written.
    """

    def __init__(
        self,
        engine: TransactionEngine,
        aggregator: PeriodAggregator,
        validator: Optional[ManualTransactionValidator] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._engine = engine
        self._aggregator = aggregator
        self._settings = settings or get_settings().app
        self._validator = validator or ManualTransactionValidator(self._settings)

    async def onboard(self, owner_id: str) -> Account:
        """Seed default categories and make sure a primary account exists."""
        await self._engine.ensure_default_categories(owner_id)
        return await self._engine.get_or_create_primary_account(owner_id)

    async def snapshot(
        self,
        owner_id: str,
        month: Optional[str] = None,
        week: Union[int, str, None] = None,
    ) -> DashboardSnapshot:
        return await self._aggregator.dashboard(
            owner_id,
            month_key=month,
            week=week,
            recent_limit=self._settings.recent_transactions_limit,
        )

    async def add_transaction(
        self,
        owner_id: str,
        payload: Union[dict, ManualTransactionInput],
    ) -> CreatedTransaction:
        """
        Quick-add from the dashboard form.

        String amounts may use chat shorthand ("25rb").

        Raises:
            InvalidTransactionInputError: If the payload is invalid
        """
        if isinstance(payload, dict) and isinstance(payload.get("amount"), str):
            shorthand = parse_rupiah(payload["amount"])
            if shorthand is not None:
                payload = {**payload, "amount": shorthand}

        data, effective_date = self._validator.validate(payload)
        return await self._engine.record_manual(owner_id, data, effective_date)


def create_app_components(
    settings: Optional[Settings] = None,
    parser: Optional[TransactionParser] = None,
    session_store: Optional[SessionStore] = None,
    create_schema: bool = True,
) -> tuple[ChatFlow, DashboardFlow, Database]:
    """
    Factory function to create all application components.

    Args:
        settings: Application settings (defaults to environment)
        parser: Transaction parser; Gemini when None
        session_store: Ephemeral state store; in-memory when None
        create_schema: Create missing tables on startup

    Returns:
        (chat_flow, dashboard_flow, database)
    """
    settings = settings or get_settings()
    status = validate_all_settings(settings)
    for name, error in status.items():
        if name.endswith("_error"):
            logger.warning("settings_invalid", section=name[: -len("_error")], error=error)
    app_settings = settings.app

    database = Database(settings.database)
    if create_schema:
        database.create_schema()

    audit_logger = AuditLogger(SqlAuditStorage(database))
    clock = FixedOffsetClock(app_settings.timezone_offset_hours)
    parser = parser or GeminiTransactionParser(settings.gemini)
    sessions = session_store or InMemorySessionStore()

    engine = TransactionEngine(SqlLedgerStorage(database), clock, audit_logger, app_settings)
    index = MessageIndex(sessions)
    engine.add_delete_listener(index.on_transaction_deleted)

    aggregator = PeriodAggregator(engine.storage, clock)
    quota = QuotaService(SqlUsageStorage(database), clock, app_settings, audit_logger)
    receipts = ReceiptWorkflow(sessions, parser, engine, quota, clock, app_settings, audit_logger)
    reply_delete = ReplyDeleteResolver(index, engine, audit_logger)

    chat_flow = ChatFlow(
        engine=engine,
        aggregator=aggregator,
        receipts=receipts,
        reply_delete=reply_delete,
        quota=quota,
        index=index,
        parser=parser,
        clock=clock,
        audit_logger=audit_logger,
    )
    dashboard_flow = DashboardFlow(engine, aggregator, settings=app_settings)

    logger.info("app_components_created", environment=app_settings.app_environment)
    return chat_flow, dashboard_flow, database
