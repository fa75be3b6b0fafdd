"""Transaction model for escrow domain."""

from dataclasses import dataclass
from datetime import date, datetime

from escrow_engine.models.escrow.enums import TransactionStatus


@dataclass
class Transaction:
    """Escrow transaction between a buyer and a (possibly invited) seller.

    Amounts are integers in the currency's minor unit (cents for ZAR).
    ``seller_id`` stays ``None`` until the invited email is linked to a profile.
    """

    transaction_id: str
    buyer_id: str
    seller_invite_email: str | None
    title: str
    description: str
    amount_minor_units: int
    currency_code: str
    delivery_terms: str
    status: TransactionStatus
    created_at: datetime
    seller_id: str | None = None
    due_date: date | None = None

    # Set exactly once
    buyer_confirmed_at: datetime | None = None
    released_at: datetime | None = None

    updated_at: datetime | None = None

    def counterparty_of(self, actor_id: str) -> str | None:
        """Return the other party's id (None while the seller is unlinked)."""
        if actor_id == self.buyer_id:
            return self.seller_id
        return self.buyer_id
