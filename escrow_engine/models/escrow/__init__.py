"""Escrow domain models."""

from escrow_engine.models.escrow.dispute import Dispute
from escrow_engine.models.escrow.enums import (
    STATUS_LABELS,
    Command,
    DisputeResolution,
    DisputeStatus,
    EventType,
    InvitationStatus,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    Role,
    TransactionStatus,
)
from escrow_engine.models.escrow.event import TransactionEvent
from escrow_engine.models.escrow.invitation import Invitation
from escrow_engine.models.escrow.notification import Notification
from escrow_engine.models.escrow.payment import Payment
from escrow_engine.models.escrow.profile import Profile
from escrow_engine.models.escrow.transaction import Transaction

__all__ = [
    "Command",
    "Dispute",
    "DisputeResolution",
    "DisputeStatus",
    "EventType",
    "Invitation",
    "InvitationStatus",
    "Notification",
    "NotificationType",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Profile",
    "Role",
    "STATUS_LABELS",
    "Transaction",
    "TransactionEvent",
    "TransactionStatus",
]
