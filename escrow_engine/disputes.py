"""Dispute sub-machine.

    open ──> under_review ──> resolved
      └───────────────────────^

``under_review`` is optional. A resolved dispute carries exactly one
resolution and rejects every further mutation.
"""

import uuid
from dataclasses import replace
from datetime import datetime

from escrow_engine.exceptions import (
    AlreadyResolvedError,
    InvalidTransitionError,
    ValidationError,
)
from escrow_engine.models.escrow import (
    Dispute,
    DisputeResolution,
    DisputeStatus,
)

DISPUTE_TRANSITIONS: dict[DisputeStatus, frozenset[DisputeStatus]] = {
    DisputeStatus.OPEN: frozenset({DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED}),
    DisputeStatus.UNDER_REVIEW: frozenset({DisputeStatus.RESOLVED}),
    DisputeStatus.RESOLVED: frozenset(),
}


def open_dispute(
    transaction_id: str,
    opened_by: str,
    reason: str,
    description: str,
    now: datetime,
) -> Dispute:
    """Create a new dispute record in ``open``."""
    if not reason or not reason.strip():
        raise ValidationError("Dispute reason is required", field="reason")
    if not description or not description.strip():
        raise ValidationError("Dispute description is required", field="description")

    return Dispute(
        dispute_id=uuid.uuid4().hex,
        transaction_id=transaction_id,
        opened_by_actor_id=opened_by,
        reason=reason.strip(),
        description=description.strip(),
        status=DisputeStatus.OPEN,
        created_at=now,
        updated_at=now,
    )


def begin_review(dispute: Dispute, now: datetime) -> Dispute:
    """Move a dispute from ``open`` to ``under_review``."""
    _check_move(dispute, DisputeStatus.UNDER_REVIEW)
    return replace(dispute, status=DisputeStatus.UNDER_REVIEW, updated_at=now)


def resolve(
    dispute: Dispute,
    resolution: DisputeResolution,
    admin_id: str,
    now: datetime,
) -> Dispute:
    """Resolve a dispute with a single terminal resolution."""
    _check_move(dispute, DisputeStatus.RESOLVED)
    return replace(
        dispute,
        status=DisputeStatus.RESOLVED,
        resolution=DisputeResolution(resolution),
        resolved_by_admin_id=admin_id,
        resolved_at=now,
        updated_at=now,
    )


def _check_move(dispute: Dispute, target: DisputeStatus) -> None:
    if dispute.status == DisputeStatus.RESOLVED:
        raise AlreadyResolvedError(
            f"Dispute {dispute.dispute_id} is already resolved "
            f"({dispute.resolution.value if dispute.resolution else 'no resolution'})",
            dispute_id=dispute.dispute_id,
        )
    if target not in DISPUTE_TRANSITIONS[dispute.status]:
        raise InvalidTransitionError(
            f"Dispute {dispute.dispute_id} cannot move from "
            f"{dispute.status.value} to {target.value}",
            transaction_id=dispute.transaction_id,
            status=dispute.status.value,
        )
