"""Pytest configuration and fixtures."""

import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest

from escrow_engine.directory import UserDirectory
from escrow_engine.engine import TransactionEngine
from escrow_engine.models.escrow import PaymentMethod, Profile, Role, Transaction
from escrow_engine.payments import PaymentAdapter, PaymentOutcome


class FixedClock:
    """Manually advanced clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class ScriptedPaymentAdapter(PaymentAdapter):
    """Deterministic adapter: returns queued outcomes, success once the queue is empty."""

    provider = "scripted"

    def __init__(self, outcomes: list[bool] | None = None) -> None:
        self.outcomes: deque[bool] = deque(outcomes or [])
        self.calls: list[tuple[str, int, PaymentMethod]] = []
        self.gate: threading.Event | None = None
        self.error: Exception | None = None
        self._counter = 0
        self._lock = threading.Lock()

    def attempt_funding(
        self,
        transaction_id: str,
        amount_minor_units: int,
        method: PaymentMethod,
    ) -> PaymentOutcome:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        with self._lock:
            self.calls.append((transaction_id, amount_minor_units, method))
            self._counter += 1
            reference = f"TEST-{self._counter:04d}"
            success = self.outcomes.popleft() if self.outcomes else True
        if self.error is not None:
            raise self.error
        return PaymentOutcome(success=success, provider_reference=reference)


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def directory() -> UserDirectory:
    """Directory with a buyer, a seller, an admin and an unrelated user."""
    directory = UserDirectory()
    directory.register("Alice Buyer", "alice@example.com", profile_id="buyer-1")
    directory.register("Sam Seller", "sam@example.com", profile_id="seller-1")
    directory.register("Ada Admin", "ada@example.com", roles={Role.ADMIN}, profile_id="admin-1")
    directory.register("Olly Outsider", "olly@example.com", profile_id="outsider-1")
    return directory


@pytest.fixture
def buyer(directory: UserDirectory) -> Profile:
    return directory.get("buyer-1")


@pytest.fixture
def seller(directory: UserDirectory) -> Profile:
    return directory.get("seller-1")


@pytest.fixture
def admin(directory: UserDirectory) -> Profile:
    return directory.get("admin-1")


@pytest.fixture
def adapter() -> ScriptedPaymentAdapter:
    return ScriptedPaymentAdapter()


@pytest.fixture
def engine(
    directory: UserDirectory,
    adapter: ScriptedPaymentAdapter,
    clock: FixedClock,
) -> Iterator[TransactionEngine]:
    """Engine over a fresh store; closed after the test."""
    engine = TransactionEngine(directory, adapter, clock=clock)
    yield engine
    if adapter.gate is not None:
        adapter.gate.set()
    engine.close()


@pytest.fixture
def new_txn(engine: TransactionEngine, buyer: Profile, seller: Profile) -> Transaction:
    """Transaction for ZAR 1,000.00 awaiting the seller's acceptance."""
    return engine.create_transaction(
        buyer.profile_id,
        "Used MacBook Pro",
        "2019 model, 16GB RAM",
        100000,
        "ZAR",
        "Courier within 3 days",
        seller_email=seller.email,
    )


@pytest.fixture
def accepted_txn(engine: TransactionEngine, new_txn: Transaction, seller: Profile) -> Transaction:
    return engine.accept(new_txn.transaction_id, seller.profile_id)


@pytest.fixture
def funded_txn(engine: TransactionEngine, accepted_txn: Transaction, buyer: Profile) -> Transaction:
    engine.fund(accepted_txn.transaction_id, buyer.profile_id, PaymentMethod.CARD)
    return engine.wait_for_payment(accepted_txn.transaction_id, timeout=5)


@pytest.fixture
def delivered_txn(engine: TransactionEngine, funded_txn: Transaction, seller: Profile) -> Transaction:
    return engine.mark_delivered(funded_txn.transaction_id, seller.profile_id)
