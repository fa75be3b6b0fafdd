"""Dispute model for escrow domain."""

from dataclasses import dataclass
from datetime import datetime

from escrow_engine.models.escrow.enums import DisputeResolution, DisputeStatus


@dataclass
class Dispute:
    """Dispute raised by a party against a funded transaction."""

    dispute_id: str
    transaction_id: str
    opened_by_actor_id: str
    reason: str
    description: str
    status: DisputeStatus
    created_at: datetime
    resolution: DisputeResolution | None = None
    resolved_by_admin_id: str | None = None
    resolved_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status != DisputeStatus.RESOLVED
