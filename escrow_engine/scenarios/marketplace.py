"""Marketplace scenario driving many transactions through the engine concurrently."""

import logging
import random
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable

from escrow_engine.config import EscrowConfig
from escrow_engine.directory import UserDirectory
from escrow_engine.engine import TransactionEngine
from escrow_engine.exceptions import EscrowError
from escrow_engine.generators import ProfileDraft, ProfileGenerator, TransactionTerms, TransactionTermsGenerator
from escrow_engine.models.escrow import (
    DisputeResolution,
    PaymentMethod,
    Profile,
    Role,
    TransactionStatus,
)
from escrow_engine.payments import PaymentAdapter
from escrow_engine.sinks.publisher import Sink

logger = logging.getLogger(__name__)

DISPUTE_REASONS = [
    "Item not as described",
    "Item not received",
    "Damaged on arrival",
    "Service not completed",
    "Counterfeit item",
]


@dataclass
class TransactionPlan:
    """Pre-drawn script for one transaction; drawn up front so runs are reproducible."""

    buyer: Profile
    seller: Profile | None  # None while the invitee has not registered
    invitee: ProfileDraft | None
    terms: TransactionTerms
    path: str
    method: PaymentMethod
    dispute_by_seller: bool = False
    deliver_before_dispute: bool = False
    review_first: bool = False
    dispute_reason: str = ""
    dispute_description: str = ""


@dataclass
class ScenarioResult:
    """Outcome of a scenario run."""

    paths: Counter = field(default_factory=Counter)
    final_statuses: Counter = field(default_factory=Counter)
    payment_attempts: int = 0
    errors: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)


class MarketplaceScenario:
    """Simulate a marketplace of buyers, sellers and an admin.

    Each transaction follows one lifecycle path:
    - ``release``: accept, fund, deliver, confirm receipt
    - ``dispute_refund`` / ``dispute_release``: funded, disputed, resolved by the admin
    - ``cancel``: cancelled by the buyer before acceptance
    - ``abandon``: accepted but never funded

    Some sellers are invited by email before they register, exercising
    acceptance through the invited email.
    """

    PATHS = ["release", "dispute_refund", "dispute_release", "cancel", "abandon"]
    PATH_WEIGHTS = [0.55, 0.12, 0.12, 0.11, 0.10]
    METHODS = list(PaymentMethod)
    METHOD_WEIGHTS = [0.6, 0.3, 0.1]

    def __init__(
        self,
        num_transactions: int = 50,
        num_buyers: int = 10,
        num_sellers: int = 10,
        invite_unregistered_rate: float = 0.2,
        max_payment_attempts: int = 5,
        workers: int = 8,
        config: EscrowConfig | None = None,
        sinks: Iterable[Sink] = (),
        payment_adapter: PaymentAdapter | None = None,
        seed: int | None = None,
    ) -> None:
        """Initialize marketplace scenario.

        Parameters
        ----------
        num_transactions : int
            Number of transactions to drive.
        num_buyers : int
            Number of registered buyers.
        num_sellers : int
            Number of registered sellers.
        invite_unregistered_rate : float
            Share of transactions inviting a seller who registers later.
        max_payment_attempts : int
            Funding attempts before a transaction is left awaiting payment.
        workers : int
            Concurrent actor threads.
        config : EscrowConfig | None
            Engine configuration (defaults to ``EscrowConfig()``).
        sinks : Iterable[Sink]
            Sinks receiving committed events and notifications.
        payment_adapter : PaymentAdapter | None
            Overrides the simulated gateway built from ``config``.
        seed : int | None
            Random seed for reproducibility.
        """
        self.num_transactions = num_transactions
        self.num_buyers = num_buyers
        self.num_sellers = num_sellers
        self.invite_unregistered_rate = invite_unregistered_rate
        self.max_payment_attempts = max_payment_attempts
        self.workers = workers
        self.seed = seed

        if seed is not None:
            random.seed(seed)

        self.config = config or EscrowConfig(seed=seed)
        self.directory = UserDirectory()
        self.engine = TransactionEngine.from_config(
            self.config,
            directory=self.directory,
            sinks=sinks,
            payment_adapter=payment_adapter,
        )
        self._profile_gen = ProfileGenerator(seed=seed)
        self._terms_gen = TransactionTermsGenerator(seed=seed, currency_code=self.config.engine.default_currency)
        self.admin: Profile | None = None

    def plan(self) -> list[TransactionPlan]:
        """Register participants and draw every transaction's script."""
        buyers = self._profile_gen.register_batch(self.directory, self.num_buyers)
        sellers = self._profile_gen.register_batch(self.directory, self.num_sellers)
        self.admin = self.directory.register(
            "Escrow Admin", "admin@escrow.example", roles={Role.ADMIN}
        )
        logger.info("Registered %d buyers, %d sellers and an admin", len(buyers), len(sellers))

        plans = []
        for _ in range(self.num_transactions):
            invitee = None
            seller = None
            if random.random() < self.invite_unregistered_rate:
                invitee = self._profile_gen.generate()
            else:
                seller = random.choice(sellers)
            plans.append(TransactionPlan(
                buyer=random.choice(buyers),
                seller=seller,
                invitee=invitee,
                terms=self._terms_gen.generate(),
                path=random.choices(self.PATHS, weights=self.PATH_WEIGHTS, k=1)[0],
                method=random.choices(self.METHODS, weights=self.METHOD_WEIGHTS, k=1)[0],
                dispute_by_seller=random.random() < 0.3,
                deliver_before_dispute=random.random() < 0.5,
                review_first=random.random() < 0.5,
                dispute_reason=random.choice(DISPUTE_REASONS),
                dispute_description=self._terms_gen.fake.paragraph(nb_sentences=2),
            ))
        return plans

    def generate(self) -> ScenarioResult:
        """Run every plan concurrently and return the result.

        Returns
        -------
        ScenarioResult
            Per-path counts, final statuses and the engine summary.
        """
        plans = self.plan()
        result = ScenarioResult(paths=Counter(p.path for p in plans))

        logger.info(
            "Starting marketplace scenario: %d transactions on %d workers",
            len(plans),
            self.workers,
        )

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="actor") as pool:
            outcomes = list(pool.map(self._run_plan, plans))

        for status, attempts, error in outcomes:
            if status is not None:
                result.final_statuses[status.value] += 1
            result.payment_attempts += attempts
            if error:
                result.errors.append(error)

        self.engine.flush()
        result.summary = self.engine.summary()
        logger.info(
            "Scenario complete: %d transactions, %d payment attempts, %d errors",
            result.summary["total"],
            result.payment_attempts,
            len(result.errors),
        )
        return result

    def _run_plan(self, plan: TransactionPlan) -> tuple[TransactionStatus | None, int, str | None]:
        engine = self.engine
        seller_email = plan.seller.email if plan.seller else plan.invitee.email
        attempts = 0
        try:
            txn = engine.create_transaction(
                plan.buyer.profile_id,
                plan.terms.title,
                plan.terms.description,
                plan.terms.amount_minor_units,
                plan.terms.currency_code,
                plan.terms.delivery_terms,
                plan.terms.due_date,
                seller_email=seller_email,
            )
            tid = txn.transaction_id

            if plan.path == "cancel":
                return engine.cancel(tid, plan.buyer.profile_id).status, attempts, None

            seller = plan.seller or self.directory.register(plan.invitee.display_name, plan.invitee.email)
            engine.accept(tid, seller.profile_id)
            if plan.path == "abandon":
                return engine.get_transaction(tid).status, attempts, None

            txn = engine.get_transaction(tid)
            while txn.status == TransactionStatus.AWAITING_PAYMENT and attempts < self.max_payment_attempts:
                attempts += 1
                engine.fund(tid, plan.buyer.profile_id, plan.method)
                txn = engine.wait_for_payment(tid)
            if txn.status != TransactionStatus.FUNDED:
                return txn.status, attempts, None

            if plan.path == "release":
                engine.mark_delivered(tid, seller.profile_id)
                return engine.confirm_receipt(tid, plan.buyer.profile_id).status, attempts, None

            if plan.deliver_before_dispute:
                engine.mark_delivered(tid, seller.profile_id)
            opener = seller.profile_id if plan.dispute_by_seller else plan.buyer.profile_id
            dispute = engine.open_dispute(tid, opener, plan.dispute_reason, plan.dispute_description)
            if plan.review_first:
                engine.review_dispute(dispute.dispute_id, self.admin.profile_id)
            resolution = DisputeResolution.REFUND if plan.path == "dispute_refund" else DisputeResolution.RELEASE
            engine.resolve_dispute(dispute.dispute_id, self.admin.profile_id, resolution)
            return engine.get_transaction(tid).status, attempts, None
        except EscrowError as e:
            logger.error("Plan %s failed: %s: %s", plan.path, type(e).__name__, e)
            return None, attempts, f"{plan.path}: {type(e).__name__}: {e}"

    def close(self) -> None:
        self.engine.close()
