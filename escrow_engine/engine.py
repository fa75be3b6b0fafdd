"""Transaction lifecycle engine.

Every command runs under the transaction's lock: load, authorize, check
legality, build one ``UnitOfWork`` and commit it. Notifications and sink
publication happen after the lock is released and never affect the outcome.

Funding is the one asynchronous step. ``fund`` records ``payment_processing``
and returns; the adapter runs on a worker thread and its outcome is applied
later under the same lock, exactly once per attempt.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from functools import partial
from typing import Any, Callable, Iterable, Iterator, TypeVar

from escrow_engine import disputes
from escrow_engine.config import EngineConfig, EscrowConfig
from escrow_engine.directory import UserDirectory
from escrow_engine.exceptions import (
    AdapterFailureError,
    AlreadyHasActiveDisputeError,
    EscrowError,
    ForbiddenError,
    InvalidTransitionError,
    InvitationExpiredError,
    ValidationError,
)
from escrow_engine.models.escrow import (
    Command,
    Dispute,
    DisputeResolution,
    DisputeStatus,
    EventType,
    Invitation,
    InvitationStatus,
    Notification,
    NotificationType,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Profile,
    Role,
    Transaction,
    TransactionEvent,
    TransactionStatus,
)
from escrow_engine.money import format_minor_units
from escrow_engine.notifier import Notifier
from escrow_engine.payments import PaymentAdapter, PaymentOutcome, SimulatedPaymentAdapter
from escrow_engine.sinks.publisher import Sink, SinkPublisher
from escrow_engine.store import EscrowDataStore, KeyedLocks, UnitOfWork, call_with_retries
from escrow_engine.transitions import (
    COMMAND_ROLES,
    PASS_THROUGH,
    RESOLUTION_COMMANDS,
    allowed_commands,
    next_status,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

EVENTS_TOPIC = "escrow.transaction-events"

# (recipient_id, type, title, body)
PendingNotice = tuple[str | None, NotificationType, str, str]


class TransactionEngine:
    """State machine over escrow transactions.

    Parameters
    ----------
    directory : UserDirectory
        Profiles and global roles; read once per command for authorization.
    payment_adapter : PaymentAdapter
        Funding boundary, called from a worker thread.
    store : EscrowDataStore | None
        Persistence; a fresh in-memory store by default.
    notifier : Notifier | None
        Notification delivery; a default notifier publishing to ``publisher``.
    publisher : SinkPublisher | None
        Outbound publication of committed events.
    config : EngineConfig | None
        Engine settings.
    clock : Callable[[], datetime] | None
        Source of timezone-aware "now" (injected in tests).
    payment_executor : ThreadPoolExecutor | None
        Executor running payment attempts.
    events_topic : str
        Topic committed transaction events are published to.
    """

    def __init__(
        self,
        directory: UserDirectory,
        payment_adapter: PaymentAdapter,
        store: EscrowDataStore | None = None,
        notifier: Notifier | None = None,
        publisher: SinkPublisher | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        payment_executor: ThreadPoolExecutor | None = None,
        events_topic: str = EVENTS_TOPIC,
    ) -> None:
        self.config = config or EngineConfig()
        self.directory = directory
        self.payment_adapter = payment_adapter
        self.store = store if store is not None else EscrowDataStore()
        self.publisher = publisher
        self.notifier = notifier or Notifier(
            publisher=publisher,
            delivery_attempts=self.config.notification_delivery_attempts,
        )
        self.events_topic = events_topic
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks = KeyedLocks()

        self._payment_executor = payment_executor or ThreadPoolExecutor(
            max_workers=self.config.payment_workers,
            thread_name_prefix="payment",
        )
        self._owns_payment_executor = payment_executor is None
        # transaction id -> id of the attempt whose outcome is still awaited
        self._attempts: dict[str, str] = {}
        # transaction id -> future of the attempt still running
        self._payment_futures: dict[str, Future] = {}
        self._futures_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: EscrowConfig,
        directory: UserDirectory | None = None,
        sinks: Iterable[Sink] = (),
        payment_adapter: PaymentAdapter | None = None,
    ) -> "TransactionEngine":
        """Build an engine with the simulated gateway and the given sinks."""
        publisher = SinkPublisher(sinks)
        notifier = Notifier(
            publisher=publisher,
            delivery_attempts=config.engine.notification_delivery_attempts,
            topic=config.kafka.notifications_topic,
        )
        if payment_adapter is None:
            payment_adapter = SimulatedPaymentAdapter(
                latency_seconds=config.payments.latency_seconds,
                success_rate=config.payments.success_rate,
                force_success=config.payments.force_success,
                seed=config.seed,
            )
        return cls(
            directory=directory if directory is not None else UserDirectory(),
            payment_adapter=payment_adapter,
            notifier=notifier,
            publisher=publisher,
            config=config.engine,
            events_topic=config.kafka.events_topic,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_transaction(
        self,
        buyer_id: str,
        title: str,
        description: str,
        amount_minor_units: int,
        currency_code: str | None = None,
        delivery_terms: str = "",
        due_date: date | None = None,
        seller_email: str | None = None,
    ) -> Transaction:
        """Create a transaction awaiting the invited seller's acceptance.

        Raises
        ------
        ValidationError
            For a non-positive amount, a missing title or seller email, or a
            seller email that belongs to the buyer.
        EntityNotFoundError
            If the buyer is not a registered profile.
        """
        with self._rejections("create", "new transaction", buyer_id):
            txn, invitation, seller = self._new_transaction(
                buyer_id, title, description, amount_minor_units,
                currency_code, delivery_terms, due_date, seller_email,
            )
            event = self._event(
                txn, buyer_id, EventType.CREATED,
                f"Transaction created by {self._name(buyer_id)}", txn.created_at,
            )
            events = self._commit(UnitOfWork(transaction=txn, events=[event], invitation=invitation))

        logger.info("Created transaction %s (%s) for %s", txn.transaction_id, self._amount(txn), buyer_id)
        self.directory.grant_role(buyer_id, Role.BUYER)

        notices: list[PendingNotice] = []
        if seller is not None:
            notices.append((
                seller.profile_id,
                NotificationType.INVITATION,
                "New Transaction Invitation",
                f'You have been invited to "{txn.title}" for {self._amount(txn)}.',
            ))
        self._after_commit(events, notices)
        return self.get_transaction(txn.transaction_id)

    def _new_transaction(
        self,
        buyer_id: str,
        title: str,
        description: str,
        amount_minor_units: int,
        currency_code: str | None,
        delivery_terms: str,
        due_date: date | None,
        seller_email: str | None,
    ) -> tuple[Transaction, Invitation, Profile | None]:
        buyer = self.directory.get(buyer_id)
        currency = (currency_code or self.config.default_currency).upper()

        if not title or not title.strip():
            raise ValidationError("Title is required", field="title")
        if isinstance(amount_minor_units, bool) or not isinstance(amount_minor_units, int):
            raise ValidationError("Amount must be an integer in minor units", field="amount")
        if amount_minor_units <= 0:
            raise ValidationError("Amount must be positive", field="amount")
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"Invalid currency code: {currency_code!r}", field="currency_code")
        if not seller_email or "@" not in seller_email:
            raise ValidationError("Valid seller email required", field="seller_email")
        seller_email = seller_email.strip()
        if seller_email.lower() == buyer.email.lower():
            raise ValidationError("Buyer cannot invite themselves", field="seller_email")

        now = self._clock()
        seller = self.directory.find_by_email(seller_email)
        txn = Transaction(
            transaction_id=uuid.uuid4().hex,
            buyer_id=buyer_id,
            seller_invite_email=seller_email,
            title=title.strip(),
            description=(description or "").strip(),
            amount_minor_units=amount_minor_units,
            currency_code=currency,
            delivery_terms=(delivery_terms or "").strip(),
            status=TransactionStatus.AWAITING_SELLER_ACCEPTANCE,
            created_at=now,
            seller_id=seller.profile_id if seller else None,
            due_date=due_date,
            updated_at=now,
        )
        invitation = Invitation(
            invitation_id=uuid.uuid4().hex,
            transaction_id=txn.transaction_id,
            invited_email=seller_email,
            token=str(uuid.uuid4()),
            status=InvitationStatus.PENDING,
            expires_at=now + timedelta(days=self.config.invitation_ttl_days),
            created_at=now,
        )
        return txn, invitation, seller

    def apply_command(
        self,
        transaction_id: str,
        actor_id: str,
        command: Command | str,
        payload: dict[str, Any] | None = None,
        expected_status: TransactionStatus | str | None = None,
    ) -> Transaction:
        """Apply a command by name and return the transaction afterwards.

        ``payload`` carries command arguments: ``method`` for ``fund``,
        ``reason`` and ``description`` for ``open_dispute``.

        With ``expected_status`` the command only runs if the transaction is
        still in that status; otherwise ``InvalidTransitionError`` is raised
        and nothing is written. Of two commands issued against the same
        status, exactly one succeeds.
        """
        command = self._parse(Command, command, "command")
        payload = payload or {}

        if command == Command.ACCEPT:
            return self.accept(transaction_id, actor_id, expected_status)
        if command == Command.FUND:
            return self.fund(
                transaction_id, actor_id, payload.get("method", PaymentMethod.CARD), expected_status,
            )
        if command == Command.MARK_DELIVERED:
            return self.mark_delivered(transaction_id, actor_id, expected_status)
        if command == Command.CONFIRM_RECEIPT:
            return self.confirm_receipt(transaction_id, actor_id, expected_status)
        if command == Command.CANCEL:
            return self.cancel(transaction_id, actor_id, expected_status)
        if command == Command.OPEN_DISPUTE:
            self.open_dispute(
                transaction_id,
                actor_id,
                payload.get("reason", ""),
                payload.get("description", ""),
                expected_status,
            )
            return self.get_transaction(transaction_id)
        if command in (Command.RESOLVE_REFUND, Command.RESOLVE_RELEASE):
            with self._guarded(transaction_id, actor_id, command, expected_status) as txn:
                self._check_legal(txn, command)
                dispute = self.store.get_active_dispute(transaction_id)
            resolution = next(r for r, c in RESOLUTION_COMMANDS.items() if c == command)
            self.resolve_dispute(dispute.dispute_id, actor_id, resolution, expected_status)
            return self.get_transaction(transaction_id)

        # Payment outcomes belong to the system; no actor holds that role
        with self._rejections(command.value, transaction_id, actor_id):
            self.get_transaction(transaction_id)
            raise ForbiddenError(
                f"{command.value} is applied by the payment adapter, not by an actor",
                actor_id=actor_id,
                command=command.value,
            )

    def accept(
        self,
        transaction_id: str,
        actor_id: str,
        expected_status: TransactionStatus | str | None = None,
    ) -> Transaction:
        """Seller accepts the invitation and becomes the linked seller."""
        with self._guarded(transaction_id, actor_id, Command.ACCEPT, expected_status) as txn:
            target = self._check_legal(txn, Command.ACCEPT)
            now = self._now(txn)
            invitation = self.store.get_pending_invitation(transaction_id)

            if invitation is None or invitation.is_expired(now):
                if invitation is not None:
                    expired = replace(invitation, status=InvitationStatus.EXPIRED, updated_at=now)
                    self._commit(UnitOfWork(invitation=expired))
                raise InvitationExpiredError(
                    f"Invitation for transaction {transaction_id} has expired",
                    transaction_id=transaction_id,
                    status=txn.status.value,
                    command=Command.ACCEPT.value,
                )

            name = self._name(actor_id)
            updated = replace(txn, status=target, seller_id=actor_id, updated_at=now)
            accepted = replace(invitation, status=InvitationStatus.ACCEPTED, updated_at=now)
            event = self._event(updated, actor_id, EventType.SELLER_ACCEPTED, f"{name} accepted the transaction", now)
            events = self._commit(UnitOfWork(
                transaction=updated, expected_status=txn.status, events=[event], invitation=accepted,
            ))
            self._log_transition(txn, Command.ACCEPT, updated)

        self.directory.grant_role(actor_id, Role.SELLER)
        self._after_commit(events, [(
            updated.buyer_id,
            NotificationType.SELLER_ACCEPTED,
            "Seller Accepted",
            f'{name} accepted "{updated.title}". You can now fund the transaction.',
        )])
        return self.get_transaction(transaction_id)

    def fund(
        self,
        transaction_id: str,
        actor_id: str,
        method: PaymentMethod | str = PaymentMethod.CARD,
        expected_status: TransactionStatus | str | None = None,
    ) -> Transaction:
        """Begin a funding attempt and return while it is processing.

        Raises
        ------
        AdapterFailureError
            If the attempt could not be scheduled; nothing is recorded.
        """
        method = self._parse(PaymentMethod, method, "method")

        with self._guarded(transaction_id, actor_id, Command.FUND, expected_status) as txn:
            target = self._check_legal(txn, Command.FUND)
            now = self._now(txn)
            attempt_id = uuid.uuid4().hex

            # The worker blocks on this lock, so it only sees committed state
            try:
                future = self._payment_executor.submit(
                    self._run_payment, transaction_id, attempt_id, txn.amount_minor_units, method,
                )
            except RuntimeError as e:
                raise AdapterFailureError(f"Could not start payment attempt: {e}") from e

            payment = Payment(
                payment_id=attempt_id,
                transaction_id=transaction_id,
                method=method,
                provider=self.payment_adapter.provider,
                provider_reference="",
                status=PaymentStatus.PENDING,
                amount_minor_units=txn.amount_minor_units,
                created_at=now,
                updated_at=now,
            )
            updated = replace(txn, status=target, updated_at=now)
            event = self._event(
                updated, actor_id, EventType.PAYMENT_INITIATED,
                f"Payment initiated via {method.value}", now,
                metadata={"method": method.value, "payment_id": attempt_id},
            )
            events = self._commit(UnitOfWork(
                transaction=updated, expected_status=txn.status, events=[event], payment=payment,
            ))
            self._attempts[transaction_id] = attempt_id
            with self._futures_lock:
                self._payment_futures[transaction_id] = future
            self._log_transition(txn, Command.FUND, updated)

        future.add_done_callback(partial(self._forget_payment, transaction_id))
        self._after_commit(events, [])
        return self.get_transaction(transaction_id)

    def mark_delivered(
        self,
        transaction_id: str,
        actor_id: str,
        expected_status: TransactionStatus | str | None = None,
    ) -> Transaction:
        with self._guarded(transaction_id, actor_id, Command.MARK_DELIVERED, expected_status) as txn:
            target = self._check_legal(txn, Command.MARK_DELIVERED)
            now = self._now(txn)
            name = self._name(actor_id)
            updated = replace(txn, status=target, updated_at=now)
            event = self._event(
                updated, actor_id, EventType.MARKED_DELIVERED,
                f"{name} marked the transaction as delivered", now,
            )
            events = self._commit(UnitOfWork(transaction=updated, expected_status=txn.status, events=[event]))
            self._log_transition(txn, Command.MARK_DELIVERED, updated)

        self._after_commit(events, [(
            updated.buyer_id,
            NotificationType.DELIVERY,
            "Delivery Update",
            f'"{updated.title}" has been marked as delivered. Please confirm receipt.',
        )])
        return self.get_transaction(transaction_id)

    def confirm_receipt(
        self,
        transaction_id: str,
        actor_id: str,
        expected_status: TransactionStatus | str | None = None,
    ) -> Transaction:
        """Buyer confirms receipt; funds are released in the same step.

        Two events are logged at one instant: ``buyer_confirmed`` then
        ``released``.
        """
        with self._guarded(transaction_id, actor_id, Command.CONFIRM_RECEIPT, expected_status) as txn:
            target = self._check_legal(txn, Command.CONFIRM_RECEIPT)
            intermediate = PASS_THROUGH[(txn.status, Command.CONFIRM_RECEIPT)]
            now = self._now(txn)
            name = self._name(actor_id)
            updated = replace(
                txn, status=target, buyer_confirmed_at=now, released_at=now, updated_at=now,
            )
            confirmed = self._event(
                txn, actor_id, EventType.BUYER_CONFIRMED, f"{name} confirmed receipt", now,
                status=intermediate,
            )
            released = self._event(updated, None, EventType.RELEASED, "Funds released to seller", now)
            events = self._commit(UnitOfWork(
                transaction=updated, expected_status=txn.status, events=[confirmed, released],
            ))
            self._log_transition(txn, Command.CONFIRM_RECEIPT, updated)

        self._after_commit(events, [(
            updated.seller_id,
            NotificationType.RELEASED,
            "Funds Released",
            f'Funds for "{updated.title}" ({self._amount(updated)}) have been released to you.',
        )])
        return self.get_transaction(transaction_id)

    def cancel(
        self,
        transaction_id: str,
        actor_id: str,
        expected_status: TransactionStatus | str | None = None,
    ) -> Transaction:
        """Cancel a transaction that has not been funded yet."""
        with self._guarded(transaction_id, actor_id, Command.CANCEL, expected_status) as txn:
            target = self._check_legal(txn, Command.CANCEL)
            now = self._now(txn)
            name = self._name(actor_id)
            updated = replace(txn, status=target, updated_at=now)
            invitation = self.store.get_pending_invitation(transaction_id)
            if invitation is not None:
                invitation = replace(invitation, status=InvitationStatus.EXPIRED, updated_at=now)
            event = self._event(updated, actor_id, EventType.CANCELLED, f"{name} cancelled the transaction", now)
            events = self._commit(UnitOfWork(
                transaction=updated, expected_status=txn.status, events=[event], invitation=invitation,
            ))
            self._log_transition(txn, Command.CANCEL, updated)

        self._after_commit(events, [(
            updated.counterparty_of(actor_id),
            NotificationType.CANCELLED,
            "Transaction Cancelled",
            f'"{updated.title}" was cancelled by {name}.',
        )])
        return self.get_transaction(transaction_id)

    def open_dispute(
        self,
        transaction_id: str,
        actor_id: str,
        reason: str,
        description: str,
        expected_status: TransactionStatus | str | None = None,
    ) -> Dispute:
        """Open a dispute on a funded or in-delivery transaction.

        Raises
        ------
        AlreadyHasActiveDisputeError
            If the transaction already has an unresolved dispute.
        """
        with self._guarded(transaction_id, actor_id, Command.OPEN_DISPUTE, expected_status) as txn:
            active = self.store.get_active_dispute(transaction_id)
            if active is not None:
                raise AlreadyHasActiveDisputeError(
                    f"Transaction {transaction_id} already has active dispute {active.dispute_id}",
                    dispute_id=active.dispute_id,
                )
            target = self._check_legal(txn, Command.OPEN_DISPUTE)
            now = self._now(txn)
            dispute = disputes.open_dispute(transaction_id, actor_id, reason, description, now)
            updated = replace(txn, status=target, updated_at=now)
            event = self._event(
                updated, actor_id, EventType.DISPUTE_OPENED, f"Dispute opened: {dispute.reason}", now,
                metadata={"dispute_id": dispute.dispute_id, "reason": dispute.reason},
            )
            events = self._commit(UnitOfWork(
                transaction=updated, expected_status=txn.status, events=[event], dispute=dispute,
            ))
            self._log_transition(txn, Command.OPEN_DISPUTE, updated)

        # The counterparty learns of the dispute through the transaction itself
        self._after_commit(events, [])
        return self.store.get_dispute(dispute.dispute_id)

    def review_dispute(self, dispute_id: str, admin_id: str) -> Dispute:
        """Admin takes an open dispute under review."""
        with self._rejections("review_dispute", dispute_id, admin_id):
            transaction_id = self.get_dispute(dispute_id).transaction_id
            if not self.directory.has_role(admin_id, Role.ADMIN):
                raise ForbiddenError(
                    f"Actor {admin_id} may not review disputes (requires admin)",
                    actor_id=admin_id,
                    command="review_dispute",
                )
            with self._locks.hold(transaction_id):
                txn = self.get_transaction(transaction_id)
                now = self._now(txn)
                reviewed = disputes.begin_review(self.store.get_dispute(dispute_id), now)
                updated = replace(txn, updated_at=now)
                event = self._event(
                    updated, admin_id, EventType.DISPUTE_UNDER_REVIEW, "Dispute under review", now,
                    metadata={"dispute_id": dispute_id},
                )
                events = self._commit(UnitOfWork(
                    transaction=updated, expected_status=txn.status, events=[event], dispute=reviewed,
                ))
                logger.info("Dispute %s on %s under review by %s", dispute_id, transaction_id, admin_id)

        body = f'Dispute for "{updated.title}" is now under review.'
        self._after_commit(events, [
            (party, NotificationType.DISPUTE_UNDER_REVIEW, "Dispute Under Review", body)
            for party in (updated.buyer_id, updated.seller_id)
        ])
        return self.store.get_dispute(dispute_id)

    def resolve_dispute(
        self,
        dispute_id: str,
        admin_id: str,
        resolution: DisputeResolution | str,
        expected_status: TransactionStatus | str | None = None,
    ) -> Dispute:
        """Resolve a dispute and move the transaction to the matching terminal status.

        The dispute record and the transaction status are committed together.

        Raises
        ------
        ForbiddenError
            If the actor is not an admin.
        AlreadyResolvedError
            If the dispute is already resolved.
        """
        resolution = self._parse(DisputeResolution, resolution, "resolution")
        command = RESOLUTION_COMMANDS[resolution]
        transaction_id = self.get_dispute(dispute_id).transaction_id

        with self._guarded(transaction_id, admin_id, command, expected_status) as txn:
            now = self._now(txn)
            resolved = disputes.resolve(self.store.get_dispute(dispute_id), resolution, admin_id, now)
            target = self._check_legal(txn, command)
            updated = replace(txn, status=target, updated_at=now)
            event = self._event(
                updated, admin_id, EventType.DISPUTE_RESOLVED, f"Dispute resolved: {resolution.value}", now,
                metadata={"dispute_id": dispute_id, "resolution": resolution.value},
            )
            events = self._commit(UnitOfWork(
                transaction=updated, expected_status=txn.status, events=[event], dispute=resolved,
            ))
            self._log_transition(txn, command, updated)

        body = f'Dispute for "{updated.title}" resolved with {resolution.value}.'
        self._after_commit(events, [
            (party, NotificationType.DISPUTE_RESOLVED, "Dispute Resolved", body)
            for party in (updated.buyer_id, updated.seller_id)
        ])
        return self.store.get_dispute(dispute_id)

    def wait_for_payment(self, transaction_id: str, timeout: float | None = None) -> Transaction:
        """Block until the latest funding attempt's outcome is applied."""
        with self._futures_lock:
            future = self._payment_futures.get(transaction_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_transaction(transaction_id)

    def _forget_payment(self, transaction_id: str, future: Future) -> None:
        with self._futures_lock:
            if self._payment_futures.get(transaction_id) is future:
                del self._payment_futures[transaction_id]

    # ------------------------------------------------------------------
    # Payment outcome
    # ------------------------------------------------------------------

    def _run_payment(
        self,
        transaction_id: str,
        attempt_id: str,
        amount_minor_units: int,
        method: PaymentMethod,
    ) -> Transaction | None:
        with self._locks.hold(transaction_id):
            txn = self._read(lambda: self.store.get_transaction(transaction_id))
            if txn.status != TransactionStatus.PAYMENT_PROCESSING or self._attempts.get(transaction_id) != attempt_id:
                logger.warning("Payment attempt %s for %s was never recorded; skipped", attempt_id, transaction_id)
                return None

        try:
            outcome = self.payment_adapter.attempt_funding(transaction_id, amount_minor_units, method)
        except Exception as e:
            logger.exception("Payment adapter raised for %s; treating as failed", transaction_id)
            outcome = PaymentOutcome(success=False, provider_reference="", detail=str(e))

        return self._apply_payment_outcome(transaction_id, attempt_id, outcome)

    def _apply_payment_outcome(
        self,
        transaction_id: str,
        attempt_id: str,
        outcome: PaymentOutcome,
    ) -> Transaction | None:
        """Apply an attempt's outcome with the system role; stale attempts are ignored."""
        command = Command.PAYMENT_SUCCEEDED if outcome.success else Command.PAYMENT_FAILED

        with self._rejections(command.value, transaction_id, None):
            with self._locks.hold(transaction_id):
                if self._attempts.get(transaction_id) != attempt_id:
                    logger.warning("Outcome for stale payment attempt %s ignored", attempt_id)
                    return None
                txn = self._read(lambda: self.store.get_transaction(transaction_id))
                target = self._check_legal(txn, command)
                now = self._now(txn)
                ref = outcome.provider_reference
                payment = replace(
                    self.store.get_payment(attempt_id),
                    status=PaymentStatus.COMPLETE if outcome.success else PaymentStatus.FAILED,
                    provider_reference=ref,
                    updated_at=now,
                )
                metadata = {"method": payment.method.value, "reference": ref}
                updated = replace(txn, status=target, updated_at=now)
                if outcome.success:
                    message = f"Payment of {self._amount(txn)} completed (Ref: {ref})"
                    event_type = EventType.PAYMENT_SUCCESS
                else:
                    message = f"Payment attempt failed (Ref: {ref})"
                    event_type = EventType.PAYMENT_FAILED
                    if outcome.detail:
                        metadata["detail"] = outcome.detail
                event = self._event(updated, None, event_type, message, now, metadata=metadata)
                events = self._commit(UnitOfWork(
                    transaction=updated, expected_status=txn.status, events=[event], payment=payment,
                ))
                del self._attempts[transaction_id]
                self._log_transition(txn, command, updated)

        notices: list[PendingNotice] = []
        if outcome.success:
            notices.append((
                updated.seller_id,
                NotificationType.PAYMENT_SUCCESS,
                "Transaction Funded",
                f'"{updated.title}" has been funded ({self._amount(updated)}).',
            ))
        self._after_commit(events, notices)
        return self.get_transaction(transaction_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: str) -> Transaction:
        return self._read(lambda: self.store.get_transaction(transaction_id))

    def list_transactions(
        self,
        participant_id: str | None = None,
        status: TransactionStatus | str | None = None,
        title_contains: str | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """Transactions newest first.

        A participant matches as buyer, linked seller, or holder of the
        invited email.
        """
        participant_ids = None
        invite_email = None
        if participant_id is not None:
            participant_ids = {participant_id}
            profile = self.directory.find(participant_id)
            invite_email = profile.email if profile else None
        if status is not None:
            status = self._parse(TransactionStatus, status, "status")
        return self._read(lambda: self.store.find_transactions(
            participant_ids=participant_ids,
            invite_email=invite_email,
            status=status,
            title_contains=title_contains,
            limit=limit,
        ))

    def list_events(self, transaction_id: str) -> list[TransactionEvent]:
        return self._read(lambda: self.store.get_transaction_events(transaction_id))

    def list_payments(self, transaction_id: str) -> list[Payment]:
        """Every funding attempt of a transaction, oldest first."""
        self.get_transaction(transaction_id)
        return self._read(lambda: self.store.get_transaction_payments(transaction_id))

    def list_disputes(self, status: DisputeStatus | str | None = None) -> list[Dispute]:
        if status is not None:
            status = self._parse(DisputeStatus, status, "status")
        return self._read(lambda: self.store.list_disputes(status))

    def get_dispute(self, dispute_id: str) -> Dispute:
        return self._read(lambda: self.store.get_dispute(dispute_id))

    def allowed_commands(self, transaction_id: str, actor_id: str) -> list[Command]:
        """Commands the actor could issue right now."""
        txn = self.get_transaction(transaction_id)
        roles = self._roles_of(txn, actor_id)
        has_dispute = self.store.get_active_dispute(transaction_id) is not None
        result = []
        for command in allowed_commands(txn.status):
            if not roles & COMMAND_ROLES[command]:
                continue
            if command == Command.OPEN_DISPUTE and has_dispute:
                continue
            result.append(command)
        return result

    def summary(self) -> dict[str, Any]:
        """Admin dashboard counts."""
        transactions = self._read(self.store.find_transactions)
        by_status = {status.value: 0 for status in TransactionStatus}
        for txn in transactions:
            by_status[txn.status.value] += 1
        return {
            "total": len(transactions),
            "funded": by_status[TransactionStatus.FUNDED.value],
            "disputed": by_status[TransactionStatus.DISPUTE_OPEN.value],
            "released": (
                by_status[TransactionStatus.RELEASED.value]
                + by_status[TransactionStatus.DISPUTE_RESOLVED_RELEASE.value]
            ),
            "by_status": by_status,
        }

    # Notification inbox

    def list_notifications(self, recipient_id: str, limit: int | None = None) -> list[Notification]:
        return self.notifier.inbox.list(recipient_id, limit or self.config.notification_limit)

    def unread_count(self, recipient_id: str) -> int:
        return self.notifier.inbox.unread_count(recipient_id)

    def mark_read(self, notification_id: str, recipient_id: str | None = None) -> Notification:
        return self.notifier.inbox.mark_read(notification_id, recipient_id)

    def mark_all_read(self, recipient_id: str) -> int:
        return self.notifier.inbox.mark_all_read(recipient_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def flush(self, timeout: float | None = None) -> None:
        """Wait for in-flight payments, notifications and publications."""
        with self._futures_lock:
            futures = list(self._payment_futures.values())
        if futures:
            wait(futures, timeout=timeout)
        self.notifier.flush(timeout)
        if self.publisher is not None:
            self.publisher.flush(timeout)

    def close(self) -> None:
        self.flush()
        if self._owns_payment_executor:
            self._payment_executor.shutdown(wait=True)
        self.notifier.close()
        if self.publisher is not None:
            self.publisher.close()

    def __enter__(self) -> "TransactionEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _rejections(self, label: str, subject_id: str, actor_id: str | None) -> Iterator[None]:
        try:
            yield
        except EscrowError as e:
            logger.info("Rejected %s on %s by %s: %s: %s", label, subject_id, actor_id, type(e).__name__, e)
            raise

    @contextmanager
    def _guarded(
        self,
        transaction_id: str,
        actor_id: str,
        command: Command,
        expected_status: TransactionStatus | str | None = None,
    ) -> Iterator[Transaction]:
        """Hold the transaction lock, load it, authorize the actor and check its status."""
        with self._rejections(command.value, transaction_id, actor_id):
            if expected_status is not None:
                expected_status = self._parse(TransactionStatus, expected_status, "expected_status")
            with self._locks.hold(transaction_id):
                txn = self._read(lambda: self.store.get_transaction(transaction_id))
                self._authorize(txn, actor_id, command)
                if expected_status is not None and txn.status != expected_status:
                    raise InvalidTransitionError(
                        f"Cannot {command.value} transaction {transaction_id}: status is "
                        f"{txn.status.value}, expected {expected_status.value}",
                        transaction_id=transaction_id,
                        status=txn.status.value,
                        command=command.value,
                    )
                yield txn

    def _roles_of(self, txn: Transaction, actor_id: str) -> set[Role]:
        roles = set()
        if actor_id == txn.buyer_id:
            roles.add(Role.BUYER)
        if txn.seller_id is not None and actor_id == txn.seller_id:
            roles.add(Role.SELLER)
        elif txn.seller_invite_email:
            profile = self.directory.find(actor_id)
            if profile is not None and profile.email.lower() == txn.seller_invite_email.lower():
                roles.add(Role.SELLER)
        if self.directory.has_role(actor_id, Role.ADMIN):
            roles.add(Role.ADMIN)
        return roles

    def _authorize(self, txn: Transaction, actor_id: str, command: Command) -> None:
        required = COMMAND_ROLES[command]
        if not self._roles_of(txn, actor_id) & required:
            raise ForbiddenError(
                f"Actor {actor_id} may not {command.value} transaction {txn.transaction_id} "
                f"(requires {', '.join(sorted(r.value for r in required))})",
                actor_id=actor_id,
                command=command.value,
            )

    @staticmethod
    def _check_legal(txn: Transaction, command: Command) -> TransactionStatus:
        try:
            return next_status(txn.status, command)
        except InvalidTransitionError as e:
            e.transaction_id = txn.transaction_id
            raise

    def _now(self, txn: Transaction) -> datetime:
        # Never earlier than the last write, so event order follows commit order
        return max(self._clock(), txn.updated_at or txn.created_at)

    def _read(self, func: Callable[[], T]) -> T:
        return call_with_retries(
            func,
            attempts=self.config.storage_retry_attempts,
            delay_seconds=self.config.storage_retry_delay_seconds,
        )

    def _commit(self, unit: UnitOfWork) -> list[TransactionEvent]:
        return call_with_retries(
            lambda: self.store.commit(unit),
            attempts=self.config.storage_retry_attempts,
            delay_seconds=self.config.storage_retry_delay_seconds,
        )

    @staticmethod
    def _event(
        txn: Transaction,
        actor_id: str | None,
        event_type: EventType,
        message: str,
        now: datetime,
        metadata: dict | None = None,
        status: TransactionStatus | None = None,
    ) -> TransactionEvent:
        return TransactionEvent(
            event_id=uuid.uuid4().hex,
            transaction_id=txn.transaction_id,
            actor_id=actor_id,
            event_type=event_type,
            message=message,
            status=status or txn.status,
            created_at=now,
            metadata=metadata or {},
        )

    def _name(self, actor_id: str) -> str:
        profile = self.directory.find(actor_id)
        return profile.display_name if profile else actor_id

    @staticmethod
    def _amount(txn: Transaction) -> str:
        return format_minor_units(txn.amount_minor_units, txn.currency_code)

    @staticmethod
    def _parse(enum_cls: type[T], value: Any, field: str) -> T:
        try:
            return enum_cls(value)
        except ValueError:
            raise ValidationError(f"Unknown {field}: {value!r}", field=field) from None

    @staticmethod
    def _log_transition(before: Transaction, command: Command, after: Transaction) -> None:
        logger.info(
            "Transaction %s: %s %s -> %s",
            after.transaction_id,
            command.value,
            before.status.value,
            after.status.value,
        )

    def _after_commit(self, events: list[TransactionEvent], notices: list[PendingNotice]) -> None:
        if self.publisher is not None:
            self.publisher.publish(self.events_topic, events)
        for recipient_id, type_, title, body in notices:
            try:
                self.notifier.notify(recipient_id, type_, title, body)
            except Exception:
                logger.exception("Notification %s to %s failed", type_.value, recipient_id)
