"""
Cash register service - cashier shift reconciliation
A cashier opens a shift with a float, collects payments during it and closes it by
counting the drawer. The expected cash is the float plus all cash the cashier
took inside the shift window, including the cash split of mixed payments; the difference is the variance the operator
then approves or rejects.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, date, time
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from frontdesk.engine.state_machine import StateMachine, StateMachineConfig, StateTransition
from frontdesk.errors import (
    InvalidTransition, NoOpenShift, NotFound, ShiftAlreadyOpen, ValidationError
)
from frontdesk.models.events import EventType, ShiftEventData
from frontdesk.models.ontology import CashRegisterShift, Payment, PaymentMethod, ShiftStatus
from frontdesk.security.authorization import (
    ActorContext, AuthorizationGate, Operation, OperationRequest, authorization_gate
)
from frontdesk.services.event_bus import Event, event_bus
from frontdesk.services.pricing import money
from frontdesk.services.unit_of_work import atomic

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

SHIFT_STATE_MACHINE = StateMachine(StateMachineConfig(
    name="CashRegisterShift",
    states=[s.value for s in ShiftStatus],
    transitions=[
        StateTransition("open", "pending_approval", "close"),
        StateTransition("pending_approval", "approved", "approve"),
        StateTransition("pending_approval", "rejected", "reject"),
    ],
    initial_state="open",
))

# "close" belongs to the cashier, never to a review
REVIEW_ACTIONS = frozenset({"approve", "reject"})

_TOTAL_FIELD = {
    PaymentMethod.CASH: "total_cash_payments",
    PaymentMethod.CARD: "total_card_payments",
    PaymentMethod.TRANSFER: "total_transfer_payments",
    PaymentMethod.CHECK: "total_check_payments",
    PaymentMethod.OTHER: "total_other_payments",
}


@dataclass
class ShiftSummary:
    """Running totals of a shift"""
    shift_id: int
    cashier_id: int
    opening_time: datetime
    initial_cash: Decimal
    by_method: Dict[str, Decimal] = field(default_factory=dict)
    expected_cash: Decimal = ZERO
    total_collected: Decimal = ZERO
    total_transactions: int = 0

    def total_for(self, method: PaymentMethod) -> Decimal:
        return self.by_method.get(PaymentMethod(method).value, ZERO)


class CashRegisterService:
    """Cash register shifts"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 gate: Optional[AuthorizationGate] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self.gate = gate or authorization_gate

    def _publish(self, event_type: EventType, shift: CashRegisterShift) -> None:
        self._publish_event(Event(
            event_type=event_type,
            timestamp=datetime.now(),
            data=ShiftEventData(
                shift_id=shift.id,
                cashier_id=shift.cashier_id,
                status=shift.status.value,
                initial_cash=money(shift.initial_cash),
                expected_cash=shift.expected_cash,
                actual_cash=shift.actual_cash,
                variance=shift.variance,
                reviewed_by=shift.reviewed_by
            ).to_dict(),
            source="cash_register_service",
            operator_id=shift.operator_id
        ))

    def get_open_shift(self, ctx: ActorContext, lock: bool = False) -> Optional[CashRegisterShift]:
        query = self.db.query(CashRegisterShift).filter(
            CashRegisterShift.operator_id == ctx.operator_id,
            CashRegisterShift.cashier_id == ctx.actor_id,
            CashRegisterShift.status == ShiftStatus.OPEN
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def _require_open_shift(self, ctx: ActorContext, lock: bool = False) -> CashRegisterShift:
        shift = self.get_open_shift(ctx, lock=lock)
        if not shift:
            raise NoOpenShift("No open cash register shift", {"cashier_id": ctx.actor_id})
        return shift

    def open(self, ctx: ActorContext, initial_cash: Decimal) -> CashRegisterShift:
        """
        Open a shift.

        Raises:
            ValidationError: negative float
            ShiftAlreadyOpen: the cashier already has an open shift
        """
        initial_cash = money(initial_cash)
        if initial_cash < 0:
            raise ValidationError("Initial cash cannot be negative", {"initial_cash": initial_cash})

        try:
            with atomic(self.db, "open_shift"):
                existing = self.get_open_shift(ctx)
                if existing:
                    raise ShiftAlreadyOpen(
                        "A cash register shift is already open",
                        {"shift_id": existing.id}
                    )
                shift = CashRegisterShift(
                    operator_id=ctx.operator_id,
                    cashier_id=ctx.actor_id,
                    opening_time=datetime.now(),
                    initial_cash=initial_cash,
                    status=ShiftStatus(SHIFT_STATE_MACHINE.config.initial_state),
                )
                self.db.add(shift)
                self.db.flush()
        except IntegrityError as e:
            # lost the race against a concurrent open
            raise ShiftAlreadyOpen(
                "A cash register shift is already open", {"cashier_id": ctx.actor_id}
            ) from e

        logger.info(f"Shift {shift.id} opened by cashier {ctx.actor_id} with {initial_cash}")
        self._publish(EventType.SHIFT_OPENED, shift)
        return shift

    def _tally(self, shift: CashRegisterShift, until: datetime) -> ShiftSummary:
        payments = self.db.query(Payment).filter(
            Payment.operator_id == shift.operator_id,
            Payment.cashier_id == shift.cashier_id,
            Payment.payment_date >= shift.opening_time,
            Payment.payment_date <= until
        ).all()

        by_method = {
            method.value: ZERO for method in PaymentMethod if method != PaymentMethod.MIXED
        }
        bookings = set()
        for payment in payments:
            # a mixed payment counts each split under its own method
            for method, share in payment.portions():
                by_method[method.value] = by_method[method.value] + money(share)
            bookings.add(payment.booking_id)

        initial_cash = money(shift.initial_cash)
        return ShiftSummary(
            shift_id=shift.id,
            cashier_id=shift.cashier_id,
            opening_time=shift.opening_time,
            initial_cash=initial_cash,
            by_method=by_method,
            expected_cash=initial_cash + by_method[PaymentMethod.CASH.value],
            total_collected=sum(by_method.values(), ZERO),
            total_transactions=len(bookings),
        )

    def current_summary(self, ctx: ActorContext) -> ShiftSummary:
        """
        Totals of the cashier's open shift up to now.

        Raises:
            NoOpenShift
        """
        shift = self._require_open_shift(ctx)
        return self._tally(shift, datetime.now())

    def close(self, ctx: ActorContext, actual_cash: Decimal,
              notes: Optional[str] = None) -> CashRegisterShift:
        """
        Close the open shift and submit it for operator review.

        variance = actual_cash - expected_cash

        Raises:
            ValidationError: negative counted cash
            NoOpenShift
        """
        actual_cash = money(actual_cash)
        if actual_cash < 0:
            raise ValidationError("Actual cash cannot be negative", {"actual_cash": actual_cash})

        with atomic(self.db, "close_shift"):
            shift = self._require_open_shift(ctx, lock=True)
            closing_time = datetime.now()
            summary = self._tally(shift, closing_time)

            for method, column in _TOTAL_FIELD.items():
                setattr(shift, column, summary.total_for(method))
            shift.closing_time = closing_time
            shift.expected_cash = summary.expected_cash
            shift.actual_cash = actual_cash
            shift.variance = actual_cash - summary.expected_cash
            shift.notes = notes
            shift.status = ShiftStatus(SHIFT_STATE_MACHINE.target_for(shift.status, "close"))
            self.db.flush()

        logger.info(
            f"Shift {shift.id} closed: expected {shift.expected_cash}, "
            f"actual {shift.actual_cash}, variance {shift.variance}"
        )
        self._publish(EventType.SHIFT_CLOSED, shift)
        return shift

    def review(self, ctx: ActorContext, shift_id: int, action: str,
               notes: Optional[str] = None) -> CashRegisterShift:
        """
        Approve or reject a closed shift. Operator only; the outcome is final.

        Raises:
            PermissionDenied: actor is not the operator
            NotFound
            ValidationError: action is not approve or reject
            InvalidTransition: shift is not pending approval
        """
        self.gate.check(ctx.capabilities, OperationRequest(Operation.REVIEW_SHIFT))
        if action not in REVIEW_ACTIONS:
            raise ValidationError(
                f"Unknown review action: {action}",
                {"action": action, "allowed": sorted(REVIEW_ACTIONS)}
            )

        with atomic(self.db, "review_shift"):
            shift = self.db.query(CashRegisterShift).filter(
                CashRegisterShift.id == shift_id,
                CashRegisterShift.operator_id == ctx.operator_id
            ).with_for_update().first()
            if not shift:
                raise NotFound("Cash register shift not found", {"shift_id": shift_id})

            target = SHIFT_STATE_MACHINE.target_for(shift.status, action)
            if target is None:
                raise InvalidTransition(
                    f"Cannot {action} a shift that is {shift.status.value}",
                    {"shift_id": shift.id, "status": shift.status.value, "action": action}
                )

            shift.status = ShiftStatus(target)
            shift.reviewed_by = ctx.actor_id
            shift.reviewed_at = datetime.now()
            if notes:
                shift.notes = f"{shift.notes}\n[Review] {notes}" if shift.notes else f"[Review] {notes}"
            self.db.flush()

        logger.info(f"Shift {shift.id} {shift.status.value} by {ctx.actor_id}")
        self._publish(EventType.SHIFT_REVIEWED, shift)
        return shift

    def list_shifts(self, ctx: ActorContext, cashier_id: Optional[int] = None,
                    status: Optional[ShiftStatus] = None,
                    start_date: Optional[date] = None,
                    end_date: Optional[date] = None) -> List[CashRegisterShift]:
        """Shift history for audit, newest first"""
        self.gate.check(ctx.capabilities, OperationRequest(Operation.VIEW_REPORTS))

        query = self.db.query(CashRegisterShift).filter(
            CashRegisterShift.operator_id == ctx.operator_id
        )
        if not ctx.is_operator:
            cashier_id = ctx.actor_id
        if cashier_id:
            query = query.filter(CashRegisterShift.cashier_id == cashier_id)
        if status:
            query = query.filter(CashRegisterShift.status == status)
        if start_date:
            query = query.filter(CashRegisterShift.opening_time >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(CashRegisterShift.opening_time <= datetime.combine(end_date, time.max))
        return query.order_by(CashRegisterShift.opening_time.desc()).all()
