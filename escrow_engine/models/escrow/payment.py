"""Payment attempt model for escrow domain."""

from dataclasses import dataclass
from datetime import datetime

from escrow_engine.models.escrow.enums import PaymentMethod, PaymentStatus


@dataclass
class Payment:
    """One funding attempt; every attempt is retained for audit."""

    payment_id: str
    transaction_id: str
    method: PaymentMethod
    provider: str
    provider_reference: str
    status: PaymentStatus
    amount_minor_units: int
    created_at: datetime
    updated_at: datetime | None = None
