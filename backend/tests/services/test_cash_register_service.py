"""
Tests for frontdesk/services/cash_register_service.py
"""
import pytest
from datetime import date, timedelta
from decimal import Decimal

from frontdesk.errors import (
    InvalidTransition, NoOpenShift, NotFound, PermissionDenied, ShiftAlreadyOpen,
    ValidationError
)
from frontdesk.models.events import EventType
from frontdesk.models.ontology import CashRegisterShift, PaymentMethod, ShiftStatus
from frontdesk.models.schemas import BookingCreate, ChargeItem, PaymentSplitCreate
from frontdesk.services.cash_register_service import CashRegisterService
from frontdesk.services.ledger_service import LedgerService


@pytest.fixture
def register(db_session, published):
    return CashRegisterService(db_session, event_publisher=published.append)


@pytest.fixture
def ledger(db_session, published):
    return LedgerService(db_session, event_publisher=published.append)


@pytest.fixture
def open_shift(register, cashier_ctx):
    return register.open(cashier_ctx, Decimal("50"))


class TestOpen:

    def test_open_shift(self, open_shift, cashier, published):
        assert open_shift.status == ShiftStatus.OPEN
        assert open_shift.initial_cash == Decimal("50.00")
        assert open_shift.cashier_id == cashier.id
        assert published[-1].event_type == EventType.SHIFT_OPENED

    def test_second_open_is_rejected(self, register, cashier_ctx, open_shift):
        with pytest.raises(ShiftAlreadyOpen) as exc_info:
            register.open(cashier_ctx, Decimal("10"))
        assert exc_info.value.details["shift_id"] == open_shift.id

    def test_concurrent_open_hits_the_unique_index(self, register, cashier_ctx, open_shift,
                                                   db_session, monkeypatch):
        """A racing open that missed the pre-check is stopped by the database"""
        monkeypatch.setattr(register, "get_open_shift", lambda ctx, lock=False: None)

        with pytest.raises(ShiftAlreadyOpen):
            register.open(cashier_ctx, Decimal("10"))
        assert db_session.query(CashRegisterShift).count() == 1

    def test_each_cashier_has_own_shift(self, register, cashier_ctx, owner_ctx, open_shift):
        other = register.open(owner_ctx, Decimal("0"))
        assert other.id != open_shift.id

    def test_negative_float(self, register, cashier_ctx):
        with pytest.raises(ValidationError):
            register.open(cashier_ctx, Decimal("-1"))


class TestSummaryAndClose:

    def test_no_open_shift(self, register, cashier_ctx):
        with pytest.raises(NoOpenShift):
            register.current_summary(cashier_ctx)
        with pytest.raises(NoOpenShift):
            register.close(cashier_ctx, Decimal("0"))

    def test_summary_by_method(self, register, ledger, cashier_ctx, open_shift, room_101,
                               customer):
        booking = ledger.create_booking(
            cashier_ctx, BookingCreate(customer_id=customer.id, room_id=room_101.id)
        )
        ledger.apply_payment(cashier_ctx, booking.id, Decimal("30"), PaymentMethod.CASH)
        ledger.apply_payment(cashier_ctx, booking.id, Decimal("45"), PaymentMethod.CARD)

        summary = register.current_summary(cashier_ctx)

        assert summary.total_for(PaymentMethod.CASH) == Decimal("30.00")
        assert summary.total_for(PaymentMethod.CARD) == Decimal("45.00")
        assert summary.total_for(PaymentMethod.TRANSFER) == Decimal("0.00")
        assert summary.expected_cash == Decimal("80.00")
        assert summary.total_collected == Decimal("75.00")
        assert summary.total_transactions == 1

    def test_mixed_payment_counts_each_split(self, register, ledger, cashier_ctx, open_shift,
                                             room_101, customer):
        booking = ledger.create_booking(
            cashier_ctx, BookingCreate(customer_id=customer.id, room_id=room_101.id)
        )
        ledger.apply_payment(
            cashier_ctx, booking.id, Decimal("100"), PaymentMethod.MIXED,
            payment_splits=[
                PaymentSplitCreate(payment_method=PaymentMethod.CASH, amount=Decimal("35")),
                PaymentSplitCreate(payment_method=PaymentMethod.CARD, amount=Decimal("65"))
            ]
        )

        summary = register.current_summary(cashier_ctx)
        assert summary.total_for(PaymentMethod.CASH) == Decimal("35.00")
        assert summary.total_for(PaymentMethod.CARD) == Decimal("65.00")
        assert "mixed" not in summary.by_method
        assert summary.expected_cash == Decimal("85.00")
        assert summary.total_collected == Decimal("100.00")

        shift = register.close(cashier_ctx, Decimal("85"))
        assert shift.total_cash_payments == Decimal("35.00")
        assert shift.total_card_payments == Decimal("65.00")
        assert shift.variance == Decimal("0.00")

    def test_other_cashiers_payments_are_excluded(self, register, ledger, cashier_ctx,
                                                  owner_ctx, open_shift, room_101, customer):
        booking = ledger.create_booking(
            owner_ctx, BookingCreate(customer_id=customer.id, room_id=room_101.id)
        )
        ledger.apply_payment(owner_ctx, booking.id, Decimal("100"), PaymentMethod.CASH)

        assert register.current_summary(cashier_ctx).expected_cash == Decimal("50.00")

    def test_close_records_variance(self, register, ledger, cashier_ctx, open_shift,
                                    room_101, customer, published):
        booking = ledger.create_booking(
            cashier_ctx, BookingCreate(customer_id=customer.id, room_id=room_101.id)
        )
        ledger.apply_payment(cashier_ctx, booking.id, Decimal("40"), PaymentMethod.CASH)

        shift = register.close(cashier_ctx, Decimal("85"), notes="Drawer short")

        assert shift.status == ShiftStatus.PENDING_APPROVAL
        assert shift.expected_cash == Decimal("90.00")
        assert shift.actual_cash == Decimal("85.00")
        assert shift.variance == Decimal("-5.00")
        assert shift.total_cash_payments == Decimal("40.00")
        assert shift.closing_time is not None
        assert published[-1].event_type == EventType.SHIFT_CLOSED
        assert register.get_open_shift(cashier_ctx) is None

    def test_refunds_do_not_change_expected_cash(self, register, ledger, cashier_ctx,
                                                 open_shift, room_101, customer,
                                                 step_up_token):
        booking = ledger.create_booking(
            cashier_ctx, BookingCreate(customer_id=customer.id, room_id=room_101.id)
        )
        ledger.apply_payment(cashier_ctx, booking.id, Decimal("60"), PaymentMethod.CASH)
        ledger.refund(cashier_ctx, booking.id, Decimal("10"), "Overcharged",
                      authorization_token=step_up_token)

        assert register.current_summary(cashier_ctx).expected_cash == Decimal("110.00")


class TestReview:

    @pytest.fixture
    def closed_shift(self, register, cashier_ctx, open_shift):
        return register.close(cashier_ctx, Decimal("50"))

    def test_approve(self, register, owner_ctx, owner, closed_shift, published):
        shift = register.review(owner_ctx, closed_shift.id, "approve", notes="ok")
        assert shift.status == ShiftStatus.APPROVED
        assert shift.reviewed_by == owner.id
        assert shift.reviewed_at is not None
        assert shift.notes == "[Review] ok"
        assert published[-1].event_type == EventType.SHIFT_REVIEWED

    def test_review_is_final(self, register, owner_ctx, closed_shift):
        register.review(owner_ctx, closed_shift.id, "reject")
        with pytest.raises(InvalidTransition):
            register.review(owner_ctx, closed_shift.id, "approve")

    def test_open_shift_cannot_be_reviewed(self, register, owner_ctx, open_shift):
        with pytest.raises(InvalidTransition):
            register.review(owner_ctx, open_shift.id, "approve")

    def test_unknown_action(self, register, owner_ctx, closed_shift):
        with pytest.raises(ValidationError):
            register.review(owner_ctx, closed_shift.id, "delete")

    def test_review_cannot_close_an_open_shift(self, register, owner_ctx, open_shift,
                                               db_session):
        with pytest.raises(ValidationError):
            register.review(owner_ctx, open_shift.id, "close", "forced")

        db_session.expire_all()
        shift = db_session.get(CashRegisterShift, open_shift.id)
        assert shift.status == ShiftStatus.OPEN
        assert shift.closing_time is None
        assert shift.expected_cash is None
        assert shift.reviewed_by is None

    def test_cashier_cannot_review(self, register, cashier_ctx, closed_shift):
        with pytest.raises(PermissionDenied):
            register.review(cashier_ctx, closed_shift.id, "approve")

    def test_other_tenant_cannot_see_shift(self, register, other_ctx, closed_shift):
        with pytest.raises(NotFound):
            register.review(other_ctx, closed_shift.id, "approve")


class TestListShifts:

    def test_operator_lists_all(self, register, owner_ctx, cashier_ctx, open_shift):
        register.open(owner_ctx, Decimal("0"))
        assert len(register.list_shifts(owner_ctx)) == 2
        assert len(register.list_shifts(owner_ctx, status=ShiftStatus.OPEN)) == 2
        assert register.list_shifts(owner_ctx, status=ShiftStatus.APPROVED) == []

    def test_date_window(self, register, owner_ctx, open_shift):
        today = date.today()
        assert len(register.list_shifts(owner_ctx, start_date=today, end_date=today)) == 1
        assert register.list_shifts(owner_ctx, start_date=today + timedelta(days=1)) == []

    def test_cashier_needs_report_capability(self, register, cashier_ctx, open_shift):
        with pytest.raises(PermissionDenied):
            register.list_shifts(cashier_ctx)


def test_front_desk_day(register, ledger, cashier_ctx, owner_ctx, room_101, customer, soda):
    """
    One guest, one night, one minibar item paid in cash:
    the drawer closes exactly at float + collected cash.
    """
    register.open(cashier_ctx, Decimal("50"))

    booking = ledger.create_booking(
        cashier_ctx, BookingCreate(customer_id=customer.id, room_id=room_101.id)
    )
    ledger.add_charges(cashier_ctx, booking.id, [ChargeItem(product_id=soda.id)])
    assert booking.total_amount == Decimal("122.00")

    ledger.apply_payment(cashier_ctx, booking.id, Decimal("122"), PaymentMethod.CASH)
    ledger.checkout(cashier_ctx, booking.id)

    shift = register.close(cashier_ctx, Decimal("172"))
    assert shift.expected_cash == Decimal("172.00")
    assert shift.variance == Decimal("0.00")

    reviewed = register.review(owner_ctx, shift.id, "approve")
    assert reviewed.status == ShiftStatus.APPROVED
