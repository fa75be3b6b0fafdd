"""Payment adapter contract and the simulated gateway."""

import logging
import random
import string
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from escrow_engine.models.escrow import PaymentMethod

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of one funding attempt: success or failure, never anything else."""

    success: bool
    provider_reference: str
    detail: str = ""


class PaymentAdapter(ABC):
    """Boundary to the payment provider.

    ``attempt_funding`` may be slow; the engine always calls it from a worker
    thread and never while holding a transaction lock.
    """

    provider: str = "external"

    @abstractmethod
    def attempt_funding(
        self,
        transaction_id: str,
        amount_minor_units: int,
        method: PaymentMethod,
    ) -> PaymentOutcome:
        """Attempt to fund the transaction and report the outcome."""


class SimulatedPaymentAdapter(PaymentAdapter):
    """Gateway stand-in with latency and a configurable success rate.

    Parameters
    ----------
    latency_seconds : float
        Simulated processing delay per attempt.
    success_rate : float
        Probability (0.0 to 1.0) that an attempt succeeds.
    force_success : bool
        Always succeed, regardless of ``success_rate``.
    seed : int | None
        Random seed for reproducibility.
    sleep : Callable[[float], None]
        Sleep function (injected in tests).
    """

    provider = "simulated"

    def __init__(
        self,
        latency_seconds: float = 2.5,
        success_rate: float = 0.7,
        force_success: bool = False,
        seed: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0.0 and 1.0")
        if latency_seconds < 0:
            raise ValueError("latency_seconds must be non-negative")
        self.latency_seconds = latency_seconds
        self.success_rate = success_rate
        self.force_success = force_success
        self._sleep = sleep
        self._random = random.Random(seed)
        self._random_lock = threading.Lock()

    def attempt_funding(
        self,
        transaction_id: str,
        amount_minor_units: int,
        method: PaymentMethod,
    ) -> PaymentOutcome:
        if self.latency_seconds > 0:
            self._sleep(self.latency_seconds)

        with self._random_lock:
            roll = self._random.random()
            suffix = "".join(self._random.choices(REFERENCE_ALPHABET, k=6))

        success = self.force_success or roll < self.success_rate
        reference = f"SIM-{int(time.time() * 1000)}-{suffix}"
        logger.debug(
            "Simulated %s payment for %s (%d): %s",
            PaymentMethod(method).value,
            transaction_id,
            amount_minor_units,
            "success" if success else "failure",
        )
        return PaymentOutcome(
            success=success,
            provider_reference=reference,
            detail="" if success else "Simulated decline",
        )
