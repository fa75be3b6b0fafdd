"""Tests for custom exception hierarchy."""

from escrow_engine.exceptions import (
    AdapterFailureError,
    AlreadyHasActiveDisputeError,
    AlreadyResolvedError,
    ConfigurationError,
    EntityNotFoundError,
    EscrowError,
    ForbiddenError,
    InvalidTransitionError,
    InvitationExpiredError,
    ReferentialIntegrityError,
    SinkError,
    StorageError,
    TransientError,
    ValidationError,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_escrow_error_is_exception(self) -> None:
        assert isinstance(EscrowError("test"), Exception)

    def test_entity_not_found_is_escrow_error(self) -> None:
        assert isinstance(EntityNotFoundError("test"), EscrowError)

    def test_referential_integrity_is_entity_not_found(self) -> None:
        err = ReferentialIntegrityError("test")
        assert isinstance(err, EntityNotFoundError)
        assert isinstance(err, EscrowError)

    def test_invitation_expired_is_invalid_transition(self) -> None:
        assert isinstance(InvitationExpiredError("test"), InvalidTransitionError)

    def test_remaining_errors_are_escrow_errors(self) -> None:
        for cls in (
            AdapterFailureError,
            ConfigurationError,
            SinkError,
            StorageError,
            AlreadyHasActiveDisputeError,
            AlreadyResolvedError,
        ):
            assert isinstance(cls("test"), EscrowError)

    def test_exception_message(self) -> None:
        err = ReferentialIntegrityError("Transaction txn-001 not found")
        assert str(err) == "Transaction txn-001 not found"


class TestExceptionContext:
    """Errors carry the identifiers a caller needs to react."""

    def test_validation_error_field(self) -> None:
        err = ValidationError("Amount must be positive", field="amount")
        assert err.field == "amount"
        assert ValidationError("bad").field is None

    def test_forbidden_error_context(self) -> None:
        err = ForbiddenError("no", actor_id="u-1", command="fund")
        assert err.actor_id == "u-1"
        assert err.command == "fund"

    def test_invalid_transition_context(self) -> None:
        err = InvalidTransitionError("no", transaction_id="t-1", status="released", command="cancel")
        assert err.transaction_id == "t-1"
        assert err.status == "released"
        assert err.command == "cancel"

    def test_dispute_errors_carry_dispute_id(self) -> None:
        assert AlreadyHasActiveDisputeError("x", dispute_id="d-1").dispute_id == "d-1"
        assert AlreadyResolvedError("x", dispute_id="d-2").dispute_id == "d-2"

    def test_transient_error_keeps_cause(self) -> None:
        cause = StorageError("connection reset")
        err = TransientError("gave up", attempts=3, cause=cause)
        assert err.attempts == 3
        assert err.cause is cause
