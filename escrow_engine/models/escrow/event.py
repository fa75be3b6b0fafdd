"""Transaction event model for escrow domain."""

from dataclasses import dataclass, field
from datetime import datetime

from escrow_engine.models.escrow.enums import EventType, TransactionStatus


@dataclass(frozen=True)
class TransactionEvent:
    """Immutable audit record of one transition.

    ``status`` is the transaction status the event leaves behind and
    ``sequence`` its position in the transaction's log (assigned on append).
    """

    event_id: str
    transaction_id: str
    actor_id: str | None  # None for system-generated events
    event_type: EventType
    message: str
    status: TransactionStatus
    created_at: datetime
    metadata: dict = field(default_factory=dict)
    sequence: int = 0
