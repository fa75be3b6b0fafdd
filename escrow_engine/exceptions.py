"""Custom exception hierarchy for escrow-engine."""


class EscrowError(Exception):
    """Base exception for all escrow-engine errors."""


class EntityNotFoundError(EscrowError):
    """Raised when a referenced entity does not exist."""


class ReferentialIntegrityError(EntityNotFoundError):
    """Raised when a foreign key reference is violated."""


class ValidationError(EscrowError):
    """Raised when input is malformed (non-positive amount, missing field)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ForbiddenError(EscrowError):
    """Raised when the actor lacks the role required by the command."""

    def __init__(
        self,
        message: str,
        actor_id: str | None = None,
        command: str | None = None,
    ) -> None:
        super().__init__(message)
        self.actor_id = actor_id
        self.command = command


class InvalidTransitionError(EscrowError):
    """Raised when a command is not legal from the current status.

    Also raised when a concurrent command changed the status first.
    """

    def __init__(
        self,
        message: str,
        transaction_id: str | None = None,
        status: str | None = None,
        command: str | None = None,
    ) -> None:
        super().__init__(message)
        self.transaction_id = transaction_id
        self.status = status
        self.command = command


class InvitationExpiredError(InvalidTransitionError):
    """Raised when a seller accepts after the invitation expired."""


class AlreadyHasActiveDisputeError(EscrowError):
    """Raised when opening a dispute while another one is still active."""

    def __init__(self, message: str, dispute_id: str | None = None) -> None:
        super().__init__(message)
        self.dispute_id = dispute_id


class AlreadyResolvedError(EscrowError):
    """Raised when mutating a dispute that is already resolved."""

    def __init__(self, message: str, dispute_id: str | None = None) -> None:
        super().__init__(message)
        self.dispute_id = dispute_id


class AdapterFailureError(EscrowError):
    """Raised when a payment attempt could not be issued at all."""


class StorageError(EscrowError):
    """Raised by the persistence layer on connectivity or conflict faults."""


class TransientError(EscrowError):
    """Raised when storage retries are exhausted."""

    def __init__(self, message: str, attempts: int, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.cause = cause


class ConfigurationError(EscrowError):
    """Raised when configuration is invalid or missing."""


class SinkError(EscrowError):
    """Raised when a sink operation fails."""
