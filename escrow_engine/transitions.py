"""Transaction transition table.

Every legal edge is listed explicitly; a (status, command) pair missing from
``TRANSITIONS`` is an invalid transition. Terminal statuses have no rows.

    awaiting_seller_acceptance --accept--------------> awaiting_payment
    awaiting_payment ----------fund------------------> payment_processing
    payment_processing --------payment_succeeded-----> funded
    payment_processing --------payment_failed--------> awaiting_payment
    funded --------------------mark_delivered--------> in_delivery
    in_delivery ---------------confirm_receipt-------> released (via buyer_confirmed)
    funded, in_delivery -------open_dispute----------> dispute_open
    dispute_open --------------resolve_refund--------> dispute_resolved_refund
    dispute_open --------------resolve_release-------> dispute_resolved_release
    draft, awaiting_* ---------cancel----------------> cancelled
"""

from escrow_engine.exceptions import InvalidTransitionError
from escrow_engine.models.escrow.enums import (
    Command,
    DisputeResolution,
    Role,
    TransactionStatus,
)

S = TransactionStatus

TRANSITIONS: dict[tuple[TransactionStatus, Command], TransactionStatus] = {
    (S.AWAITING_SELLER_ACCEPTANCE, Command.ACCEPT): S.AWAITING_PAYMENT,
    (S.AWAITING_PAYMENT, Command.FUND): S.PAYMENT_PROCESSING,
    (S.PAYMENT_PROCESSING, Command.PAYMENT_SUCCEEDED): S.FUNDED,
    (S.PAYMENT_PROCESSING, Command.PAYMENT_FAILED): S.AWAITING_PAYMENT,
    (S.FUNDED, Command.MARK_DELIVERED): S.IN_DELIVERY,
    (S.IN_DELIVERY, Command.CONFIRM_RECEIPT): S.RELEASED,
    (S.FUNDED, Command.OPEN_DISPUTE): S.DISPUTE_OPEN,
    (S.IN_DELIVERY, Command.OPEN_DISPUTE): S.DISPUTE_OPEN,
    (S.DISPUTE_OPEN, Command.RESOLVE_REFUND): S.DISPUTE_RESOLVED_REFUND,
    (S.DISPUTE_OPEN, Command.RESOLVE_RELEASE): S.DISPUTE_RESOLVED_RELEASE,
    (S.DRAFT, Command.CANCEL): S.CANCELLED,
    (S.AWAITING_SELLER_ACCEPTANCE, Command.CANCEL): S.CANCELLED,
    (S.AWAITING_PAYMENT, Command.CANCEL): S.CANCELLED,
}

COMMAND_ROLES: dict[Command, frozenset[Role]] = {
    Command.ACCEPT: frozenset({Role.SELLER}),
    Command.FUND: frozenset({Role.BUYER}),
    Command.PAYMENT_SUCCEEDED: frozenset({Role.SYSTEM}),
    Command.PAYMENT_FAILED: frozenset({Role.SYSTEM}),
    Command.MARK_DELIVERED: frozenset({Role.SELLER}),
    Command.CONFIRM_RECEIPT: frozenset({Role.BUYER}),
    Command.OPEN_DISPUTE: frozenset({Role.BUYER, Role.SELLER}),
    Command.RESOLVE_REFUND: frozenset({Role.ADMIN}),
    Command.RESOLVE_RELEASE: frozenset({Role.ADMIN}),
    Command.CANCEL: frozenset({Role.BUYER, Role.SELLER}),
}

RESOLUTION_COMMANDS: dict[DisputeResolution, Command] = {
    DisputeResolution.REFUND: Command.RESOLVE_REFUND,
    DisputeResolution.RELEASE: Command.RESOLVE_RELEASE,
}

TERMINAL_STATUSES = frozenset({
    S.RELEASED,
    S.DISPUTE_RESOLVED_REFUND,
    S.DISPUTE_RESOLVED_RELEASE,
    S.CANCELLED,
})

# confirm_receipt passes through buyer_confirmed on its way to released
PASS_THROUGH = {
    (S.IN_DELIVERY, Command.CONFIRM_RECEIPT): S.BUYER_CONFIRMED,
}

OPEN_FOR_DISPUTE = frozenset(
    source for source, command in TRANSITIONS if command == Command.OPEN_DISPUTE
)


def next_status(status: TransactionStatus, command: Command) -> TransactionStatus:
    """Return the status reached by applying ``command`` from ``status``.

    Raises
    ------
    InvalidTransitionError
        If no edge exists for the pair.
    """
    try:
        return TRANSITIONS[(status, command)]
    except KeyError:
        raise InvalidTransitionError(
            f"Cannot {command.value} a transaction in status {status.value}",
            status=status.value,
            command=command.value,
        ) from None


def is_terminal(status: TransactionStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_commands(status: TransactionStatus) -> list[Command]:
    """Commands with an outgoing edge from ``status``, in table order."""
    return [command for source, command in TRANSITIONS if source == status]
