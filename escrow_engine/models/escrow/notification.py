"""Notification model for escrow domain."""

from dataclasses import dataclass
from datetime import datetime

from escrow_engine.models.escrow.enums import NotificationType


@dataclass
class Notification:
    """Inbox entry owned by the recipient; only ``read`` ever changes."""

    notification_id: str
    recipient_id: str
    type: NotificationType
    title: str
    body: str
    created_at: datetime
    read: bool = False
