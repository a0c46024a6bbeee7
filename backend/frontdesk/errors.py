"""
Front-desk error taxonomy

Every core operation raises one of these synchronously. They subclass ValueError so
callers that only care about "the request was rejected" can keep catching ValueError.
The router layer maps ``category`` to an HTTP status.
"""
from decimal import Decimal
from typing import Any, Dict, Optional


class ErrorCategory:
    """Error categories."""

    VALIDATION = "validation"
    STATE_CONFLICT = "state_conflict"
    INVARIANT_VIOLATION = "invariant_violation"
    AUTHORIZATION = "authorization_failure"
    NOT_FOUND = "not_found"
    TRANSACTION_ABORTED = "transaction_aborted"


class FrontDeskError(ValueError):
    """
    Base error for front-desk operations.

    Attributes:
        category: one of ErrorCategory
        code: stable machine-readable name (defaults to the class name)
        message: human-readable message suitable for display
        details: extra data for a corrective message (e.g. the pending balance)
    """

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 code: Optional[str] = None):
        self.message = message
        self.details = details or {}
        self.code = code or type(self).__name__
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        details = {
            key: str(value) if isinstance(value, Decimal) else value
            for key, value in self.details.items()
        }
        return {
            "error": self.code,
            "category": self.category,
            "message": self.message,
            "details": details,
        }


# ============== Validation ==============

class ValidationError(FrontDeskError):
    category = ErrorCategory.VALIDATION


class DuplicateRoomNumber(ValidationError):
    pass


class InsufficientStock(ValidationError):
    pass


# ============== State conflicts ==============

class StateConflict(FrontDeskError):
    category = ErrorCategory.STATE_CONFLICT


class RoomNotAvailable(StateConflict):
    pass


class RoomBusy(StateConflict):
    pass


class InvalidTransition(StateConflict):
    pass


class BookingNotActive(StateConflict):
    pass


class ShiftAlreadyOpen(StateConflict):
    pass


class NoOpenShift(StateConflict):
    pass


class ConcurrentModification(StateConflict):
    pass


# ============== Invariant violations ==============

class InvariantViolation(FrontDeskError):
    category = ErrorCategory.INVARIANT_VIOLATION


class OverpaymentRejected(InvariantViolation):
    pass


class ResultingNegativeBalance(InvariantViolation):
    pass


class RefundExceedsPaid(InvariantViolation):
    pass


class BalanceNotSettled(InvariantViolation):
    pass


# ============== Authorization ==============

class AuthorizationFailure(FrontDeskError):
    category = ErrorCategory.AUTHORIZATION


class PermissionDenied(AuthorizationFailure):
    pass


class ExceedsDiscountLimit(AuthorizationFailure):
    pass


class AuthorizationRequired(AuthorizationFailure):
    pass


class StepUpInvalid(AuthorizationFailure):
    pass


# ============== Not found ==============

class NotFound(FrontDeskError):
    category = ErrorCategory.NOT_FOUND


# ============== Transaction boundary ==============

class TransactionAborted(FrontDeskError):
    category = ErrorCategory.TRANSACTION_ABORTED
