"""Payment adapters."""

from escrow_engine.payments.adapter import (
    PaymentAdapter,
    PaymentOutcome,
    SimulatedPaymentAdapter,
)

__all__ = ["PaymentAdapter", "PaymentOutcome", "SimulatedPaymentAdapter"]
