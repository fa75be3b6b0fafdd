"""Escrow data store with referential integrity and atomic commits."""

import threading
from copy import copy
from dataclasses import dataclass, field

from escrow_engine.exceptions import (
    AlreadyHasActiveDisputeError,
    EntityNotFoundError,
    InvalidTransitionError,
    ReferentialIntegrityError,
)
from escrow_engine.models.escrow import (
    Dispute,
    DisputeStatus,
    Invitation,
    InvitationStatus,
    Payment,
    Transaction,
    TransactionEvent,
    TransactionStatus,
)
from escrow_engine.store.event_log import EventLog


@dataclass
class UnitOfWork:
    """Everything one transition writes, committed together or not at all.

    ``expected_status`` turns the transaction write into a compare-and-swap:
    the commit fails if the stored status moved since it was read.
    """

    transaction: Transaction | None = None
    expected_status: TransactionStatus | None = None
    events: list[TransactionEvent] = field(default_factory=list)
    invitation: Invitation | None = None
    payment: Payment | None = None
    dispute: Dispute | None = None


@dataclass
class EscrowDataStore:
    """In-memory store for escrow entities with relationship tracking."""

    # Primary entities
    transactions: dict[str, Transaction] = field(default_factory=dict)
    invitations: dict[str, Invitation] = field(default_factory=dict)
    payments: dict[str, Payment] = field(default_factory=dict)
    disputes: dict[str, Dispute] = field(default_factory=dict)
    events: EventLog = field(default_factory=EventLog)

    # Relationship indexes
    _transaction_invitations: dict[str, list[str]] = field(default_factory=dict)
    _transaction_payments: dict[str, list[str]] = field(default_factory=dict)
    _transaction_disputes: dict[str, list[str]] = field(default_factory=dict)

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def commit(self, unit: UnitOfWork) -> list[TransactionEvent]:
        """Apply a unit of work atomically.

        All checks run before the first write, so a rejected unit leaves
        the store untouched.

        Returns
        -------
        list[TransactionEvent]
            The unit's events as recorded (with sequence numbers).
        """
        with self._lock:
            self._validate(unit)

            if unit.transaction is not None:
                txn = copy(unit.transaction)
                if txn.transaction_id not in self.transactions:
                    self._transaction_invitations[txn.transaction_id] = []
                    self._transaction_payments[txn.transaction_id] = []
                    self._transaction_disputes[txn.transaction_id] = []
                self.transactions[txn.transaction_id] = txn

            if unit.invitation is not None:
                self._put(self.invitations, self._transaction_invitations,
                          unit.invitation.invitation_id, unit.invitation)
            if unit.payment is not None:
                self._put(self.payments, self._transaction_payments,
                          unit.payment.payment_id, unit.payment)
            if unit.dispute is not None:
                self._put(self.disputes, self._transaction_disputes,
                          unit.dispute.dispute_id, unit.dispute)

            return [self.events.append(event) for event in unit.events]

    def _validate(self, unit: UnitOfWork) -> None:
        new_id = unit.transaction.transaction_id if unit.transaction is not None else None

        if unit.transaction is not None:
            current = self.transactions.get(new_id)
            if unit.expected_status is None:
                if current is not None:
                    raise InvalidTransitionError(
                        f"Transaction {new_id} already exists", transaction_id=new_id
                    )
            elif current is None:
                raise EntityNotFoundError(f"Transaction {new_id} not found")
            elif current.status != unit.expected_status:
                raise InvalidTransitionError(
                    f"Transaction {new_id} moved from {unit.expected_status.value} "
                    f"to {current.status.value}",
                    transaction_id=new_id,
                    status=current.status.value,
                )

        records = [unit.invitation, unit.payment, unit.dispute, *unit.events]
        for record in records:
            if record is None:
                continue
            if record.transaction_id != new_id and record.transaction_id not in self.transactions:
                raise ReferentialIntegrityError(
                    f"Transaction {record.transaction_id} not found"
                )

        if unit.dispute is not None and unit.dispute.is_active:
            active = self._active_dispute(unit.dispute.transaction_id)
            if active is not None and active.dispute_id != unit.dispute.dispute_id:
                raise AlreadyHasActiveDisputeError(
                    f"Transaction {unit.dispute.transaction_id} already has "
                    f"active dispute {active.dispute_id}",
                    dispute_id=active.dispute_id,
                )

    @staticmethod
    def _put(table: dict, index: dict[str, list[str]], key: str, record: object) -> None:
        if key not in table:
            index[record.transaction_id].append(key)
        table[key] = copy(record)

    # Query methods
    def get_transaction(self, transaction_id: str) -> Transaction:
        """Get a copy of a transaction."""
        with self._lock:
            txn = self.transactions.get(transaction_id)
            if txn is None:
                raise EntityNotFoundError(f"Transaction {transaction_id} not found")
            return copy(txn)

    def get_dispute(self, dispute_id: str) -> Dispute:
        """Get a copy of a dispute."""
        with self._lock:
            dispute = self.disputes.get(dispute_id)
            if dispute is None:
                raise EntityNotFoundError(f"Dispute {dispute_id} not found")
            return copy(dispute)

    def get_payment(self, payment_id: str) -> Payment:
        """Get a copy of a payment attempt."""
        with self._lock:
            payment = self.payments.get(payment_id)
            if payment is None:
                raise EntityNotFoundError(f"Payment {payment_id} not found")
            return copy(payment)

    def get_transaction_invitations(self, transaction_id: str) -> list[Invitation]:
        """Get all invitations for a transaction."""
        with self._lock:
            ids = self._transaction_invitations.get(transaction_id, [])
            return [copy(self.invitations[i]) for i in ids]

    def get_pending_invitation(self, transaction_id: str) -> Invitation | None:
        """Get the transaction's pending invitation, if any."""
        for invitation in self.get_transaction_invitations(transaction_id):
            if invitation.status == InvitationStatus.PENDING:
                return invitation
        return None

    def get_transaction_payments(self, transaction_id: str) -> list[Payment]:
        """Get all payment attempts for a transaction, oldest first."""
        with self._lock:
            ids = self._transaction_payments.get(transaction_id, [])
            return [copy(self.payments[i]) for i in ids]

    def get_transaction_disputes(self, transaction_id: str) -> list[Dispute]:
        """Get all disputes (active and historical) for a transaction."""
        with self._lock:
            ids = self._transaction_disputes.get(transaction_id, [])
            return [copy(self.disputes[i]) for i in ids]

    def get_active_dispute(self, transaction_id: str) -> Dispute | None:
        """Get the transaction's unresolved dispute, if any."""
        with self._lock:
            active = self._active_dispute(transaction_id)
            return copy(active) if active is not None else None

    def _active_dispute(self, transaction_id: str) -> Dispute | None:
        for dispute_id in self._transaction_disputes.get(transaction_id, []):
            dispute = self.disputes[dispute_id]
            if dispute.is_active:
                return dispute
        return None

    def get_transaction_events(self, transaction_id: str) -> list[TransactionEvent]:
        """Get the transaction's events in creation order."""
        if transaction_id not in self.transactions:
            raise EntityNotFoundError(f"Transaction {transaction_id} not found")
        return self.events.read_all(transaction_id)

    def find_transactions(
        self,
        participant_ids: set[str] | None = None,
        invite_email: str | None = None,
        status: TransactionStatus | None = None,
        title_contains: str | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """Filter transactions, newest first.

        A transaction matches the participant filter when any id in
        ``participant_ids`` is its buyer or seller, or when its invite
        email equals ``invite_email``.
        """
        needle = title_contains.lower() if title_contains else None
        email = invite_email.lower() if invite_email else None
        with self._lock:
            candidates = list(self.transactions.values())

        matched = []
        for txn in candidates:
            if participant_ids is not None or email is not None:
                ids = participant_ids or set()
                by_party = txn.buyer_id in ids or (txn.seller_id is not None and txn.seller_id in ids)
                by_email = email is not None and (txn.seller_invite_email or "").lower() == email
                if not (by_party or by_email):
                    continue
            if status is not None and txn.status != status:
                continue
            if needle is not None and needle not in txn.title.lower():
                continue
            matched.append(copy(txn))

        matched.sort(key=lambda t: t.created_at, reverse=True)
        return matched[:limit] if limit is not None else matched

    def list_disputes(self, status: DisputeStatus | None = None) -> list[Dispute]:
        """All disputes, newest first, optionally filtered by status."""
        with self._lock:
            disputes = [copy(d) for d in self.disputes.values()]
        if status is not None:
            disputes = [d for d in disputes if d.status == status]
        disputes.sort(key=lambda d: d.created_at, reverse=True)
        return disputes

    def summary(self) -> dict[str, int]:
        """Return summary counts of all entities."""
        return {
            "transactions": len(self.transactions),
            "invitations": len(self.invitations),
            "payments": len(self.payments),
            "disputes": len(self.disputes),
            "events": len(self.events),
        }
