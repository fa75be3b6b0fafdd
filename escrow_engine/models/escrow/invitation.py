"""Invitation model for escrow domain."""

from dataclasses import dataclass
from datetime import datetime

from escrow_engine.models.escrow.enums import InvitationStatus


@dataclass
class Invitation:
    """Pending seller role for one transaction, bound to an email."""

    invitation_id: str
    transaction_id: str
    invited_email: str
    token: str
    status: InvitationStatus
    expires_at: datetime
    created_at: datetime
    updated_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Expiry is checked on use, never swept."""
        return self.status == InvitationStatus.EXPIRED or now >= self.expires_at
