"""
AuthorizationGate - pure evaluation of privileged front-desk operations

Two tiers:
1. Capability flags say what a role may generally do (apply discounts, refund, ...).
2. Step-up authorization says whether *this* operation additionally needs the
   operator's credential (a short-lived token from ``step_up.issue_step_up_token``).

The gate never touches the database or the request; callers pass the actor's
``Capabilities`` and an ``OperationRequest`` explicitly.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from frontdesk.config import settings
from frontdesk.errors import (
    AuthorizationFailure, ExceedsDiscountLimit, PermissionDenied
)
from frontdesk.models.ontology import CashierPermission, DiscountType, UserRole


class Operation(str, Enum):
    """Operations the gate knows about"""
    CREATE_BOOKING = "create_booking"
    MODIFY_BOOKING = "modify_booking"
    CANCEL_BOOKING = "cancel_booking"
    APPLY_DISCOUNT = "apply_discount"
    PROCESS_REFUND = "process_refund"
    VIEW_REPORTS = "view_reports"
    MANAGE_INVENTORY = "manage_inventory"
    REVIEW_SHIFT = "review_shift"
    CONFIGURE_PROPERTY = "configure_property"


class Violation(str, Enum):
    """Why a request is denied"""
    CAPABILITY_MISSING = "capability_missing"
    OPERATOR_ONLY = "operator_only"
    DISCOUNT_LIMIT_EXCEEDED = "discount_limit_exceeded"


@dataclass(frozen=True)
class Capabilities:
    """Typed capability record for one actor"""
    can_create_bookings: bool = False
    can_modify_bookings: bool = False
    can_cancel_bookings: bool = False
    can_apply_discounts: bool = False
    max_discount_percentage: Decimal = Decimal("0")
    can_process_refunds: bool = False
    can_view_reports: bool = False
    can_manage_inventory: bool = False
    is_operator: bool = False

    @classmethod
    def for_operator(cls) -> "Capabilities":
        return cls(
            can_create_bookings=True,
            can_modify_bookings=True,
            can_cancel_bookings=True,
            can_apply_discounts=True,
            max_discount_percentage=Decimal("100"),
            can_process_refunds=True,
            can_view_reports=True,
            can_manage_inventory=True,
            is_operator=True,
        )

    @classmethod
    def from_permission(cls, permission: Optional[CashierPermission]) -> "Capabilities":
        """Build from a cashier's permission row; no row means no capabilities."""
        if permission is None:
            return cls()
        return cls(
            can_create_bookings=bool(permission.can_create_bookings),
            can_modify_bookings=bool(permission.can_modify_bookings),
            can_cancel_bookings=bool(permission.can_cancel_bookings),
            can_apply_discounts=bool(permission.can_apply_discounts),
            max_discount_percentage=Decimal(permission.max_discount_percentage or 0),
            can_process_refunds=bool(permission.can_process_refunds),
            can_view_reports=bool(permission.can_view_reports),
            can_manage_inventory=bool(permission.can_manage_inventory),
        )

    @classmethod
    def for_user(cls, user) -> "Capabilities":
        if user.role == UserRole.OPERATOR:
            return cls.for_operator()
        return cls.from_permission(user.permission)


@dataclass(frozen=True)
class ActorContext:
    """
    The authenticated principal, resolved once at the boundary.

    operator_id is the tenant; it is never taken from request input.
    """
    operator_id: int
    actor_id: int
    actor_role: UserRole
    capabilities: Capabilities

    @property
    def is_operator(self) -> bool:
        return self.actor_role == UserRole.OPERATOR


@dataclass(frozen=True)
class OperationRequest:
    """
    One operation to evaluate.

    For discounts, ``discount_amount`` is the money value of the discount and
    ``reference_total`` the booking total it is measured against.
    """
    operation: Operation
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    reference_total: Optional[Decimal] = None


@dataclass
class AuthorizationDecision:
    """Gate result: every violation found, plus whether step-up is needed."""
    allowed: bool
    requires_step_up: bool = False
    violations: List[Violation] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)

    def raise_for_violations(self) -> None:
        """
        Raise the error for the violations found.

        The precedence is fixed (missing capability, then discount cap) and does not
        depend on the order the checks ran in. A cap violation is never curable by
        step-up authorization.
        """
        if self.allowed:
            return
        details = {
            "violations": [v.value for v in self.violations],
            "requires_step_up": self.requires_step_up,
        }
        message = "; ".join(self.messages)
        if Violation.CAPABILITY_MISSING in self.violations or \
                Violation.OPERATOR_ONLY in self.violations:
            raise PermissionDenied(message, details)
        if Violation.DISCOUNT_LIMIT_EXCEEDED in self.violations:
            raise ExceedsDiscountLimit(message, details)
        raise AuthorizationFailure(message, details)


_CAPABILITY_FOR = {
    Operation.CREATE_BOOKING: "can_create_bookings",
    Operation.MODIFY_BOOKING: "can_modify_bookings",
    Operation.CANCEL_BOOKING: "can_cancel_bookings",
    Operation.APPLY_DISCOUNT: "can_apply_discounts",
    Operation.PROCESS_REFUND: "can_process_refunds",
    Operation.VIEW_REPORTS: "can_view_reports",
    Operation.MANAGE_INVENTORY: "can_manage_inventory",
}

_OPERATOR_ONLY = {Operation.REVIEW_SHIFT, Operation.CONFIGURE_PROPERTY}


class AuthorizationGate:
    """Capability and step-up evaluator"""

    def __init__(self, discount_threshold: Optional[Decimal] = None):
        # fraction of the booking total above which a discount needs step-up
        self.discount_threshold = Decimal(
            discount_threshold if discount_threshold is not None
            else settings.DISCOUNT_AUTHORIZATION_THRESHOLD
        )

    def evaluate(self, capabilities: Capabilities,
                 request: OperationRequest) -> AuthorizationDecision:
        violations: List[Violation] = []
        messages: List[str] = []

        if request.operation in _OPERATOR_ONLY and not capabilities.is_operator:
            violations.append(Violation.OPERATOR_ONLY)
            messages.append(f"Only the operator may perform: {request.operation.value}")

        flag = _CAPABILITY_FOR.get(request.operation)
        if flag and not getattr(capabilities, flag):
            violations.append(Violation.CAPABILITY_MISSING)
            messages.append(f"Missing permission: {flag}")

        requires_step_up = False

        if request.operation == Operation.APPLY_DISCOUNT:
            if request.discount_type == DiscountType.PERCENTAGE and \
                    request.discount_value is not None and \
                    Decimal(request.discount_value) > capabilities.max_discount_percentage:
                violations.append(Violation.DISCOUNT_LIMIT_EXCEEDED)
                messages.append(
                    "Maximum discount allowed: "
                    f"{capabilities.max_discount_percentage.normalize():f}%"
                )
            requires_step_up = self.discount_requires_step_up(
                request.discount_amount, request.reference_total
            )
        elif request.operation == Operation.PROCESS_REFUND:
            requires_step_up = True

        return AuthorizationDecision(
            allowed=not violations,
            requires_step_up=requires_step_up,
            violations=violations,
            messages=messages,
        )

    def discount_requires_step_up(self, discount_amount: Optional[Decimal],
                                  reference_total: Optional[Decimal]) -> bool:
        if discount_amount is None or reference_total is None:
            return False
        return Decimal(discount_amount) > Decimal(reference_total) * self.discount_threshold

    def check(self, capabilities: Capabilities, request: OperationRequest) -> AuthorizationDecision:
        """Evaluate and raise on any violation; returns the decision otherwise."""
        decision = self.evaluate(capabilities, request)
        decision.raise_for_violations()
        return decision


# Global gate instance
authorization_gate = AuthorizationGate()
