"""Enumeration types for escrow domain entities."""

from enum import Enum


class TransactionStatus(str, Enum):
    DRAFT = "draft"
    AWAITING_SELLER_ACCEPTANCE = "awaiting_seller_acceptance"
    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_PROCESSING = "payment_processing"
    FUNDED = "funded"
    IN_DELIVERY = "in_delivery"
    BUYER_CONFIRMED = "buyer_confirmed"
    RELEASED = "released"
    DISPUTE_OPEN = "dispute_open"
    DISPUTE_RESOLVED_REFUND = "dispute_resolved_refund"
    DISPUTE_RESOLVED_RELEASE = "dispute_resolved_release"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        """Short human-readable label."""
        return STATUS_LABELS[self]


STATUS_LABELS = {
    TransactionStatus.DRAFT: "Draft",
    TransactionStatus.AWAITING_SELLER_ACCEPTANCE: "Awaiting Seller",
    TransactionStatus.AWAITING_PAYMENT: "Awaiting Payment",
    TransactionStatus.PAYMENT_PROCESSING: "Processing Payment",
    TransactionStatus.FUNDED: "Funded",
    TransactionStatus.IN_DELIVERY: "In Delivery",
    TransactionStatus.BUYER_CONFIRMED: "Buyer Confirmed",
    TransactionStatus.RELEASED: "Released",
    TransactionStatus.DISPUTE_OPEN: "Dispute Open",
    TransactionStatus.DISPUTE_RESOLVED_REFUND: "Refunded",
    TransactionStatus.DISPUTE_RESOLVED_RELEASE: "Released (Dispute)",
    TransactionStatus.CANCELLED: "Cancelled",
}


class Command(str, Enum):
    ACCEPT = "accept"
    FUND = "fund"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    MARK_DELIVERED = "mark_delivered"
    CONFIRM_RECEIPT = "confirm_receipt"
    OPEN_DISPUTE = "open_dispute"
    RESOLVE_REFUND = "resolve_refund"
    RESOLVE_RELEASE = "resolve_release"
    CANCEL = "cancel"


class EventType(str, Enum):
    CREATED = "created"
    SELLER_ACCEPTED = "seller_accepted"
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    MARKED_DELIVERED = "marked_delivered"
    BUYER_CONFIRMED = "buyer_confirmed"
    RELEASED = "released"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_UNDER_REVIEW = "dispute_under_review"
    DISPUTE_RESOLVED = "dispute_resolved"
    CANCELLED = "cancelled"


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class PaymentMethod(str, Enum):
    CARD = "card"
    EFT = "eft"
    WALLET = "wallet"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


class DisputeStatus(str, Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"


class DisputeResolution(str, Enum):
    REFUND = "refund"
    RELEASE = "release"


class NotificationType(str, Enum):
    INVITATION = "invitation"
    SELLER_ACCEPTED = "seller_accepted"
    PAYMENT_SUCCESS = "payment_success"
    DELIVERY = "delivery"
    RELEASED = "released"
    DISPUTE_UNDER_REVIEW = "dispute_under_review"
    DISPUTE_RESOLVED = "dispute_resolved"
    CANCELLED = "cancelled"
