"""
Front-desk routes - bookings, ledger and the cashier's own shift
"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.errors import FrontDeskError
from frontdesk.models.ontology import Booking, BookingStatus, RoomKind
from frontdesk.models.schemas import (
    BookingCreate, BookingResponse, ChargesCreate, CustomerCreate, CustomerResponse,
    DiscountCreate, LedgerResult, PaymentCreate, ProductResponse, RefundCreate,
    RoomResponse, ShiftClose, ShiftOpen, ShiftResponse
)
from frontdesk.routers.errors import http_error
from frontdesk.security.auth import get_actor_context
from frontdesk.security.authorization import ActorContext
from frontdesk.services.cash_register_service import CashRegisterService
from frontdesk.services.catalog_service import CatalogService
from frontdesk.services.customer_service import CustomerService
from frontdesk.services.ledger_service import LedgerService
from frontdesk.services.pricing import money
from frontdesk.services.room_registry import RoomRegistry

router = APIRouter(prefix="/cashier", tags=["Front desk"])


def _ledger_result(booking: Booking, line=None, line_amount=None) -> LedgerResult:
    return LedgerResult(
        booking_id=booking.id,
        booking_code=booking.booking_code,
        status=booking.status,
        total_amount=money(booking.total_amount),
        amount_paid=money(booking.amount_paid),
        balance=money(booking.balance),
        line_id=line.id if line is not None else None,
        line_amount=line_amount
    )


# ============== Rooms, customers, catalog ==============

@router.get("/rooms", response_model=List[RoomResponse])
def list_rooms(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    return RoomRegistry(db).list_rooms(ctx.operator_id)


@router.get("/rooms/available", response_model=List[RoomResponse])
def find_available_rooms(
    room_type: Optional[RoomKind] = None,
    check_in: Optional[datetime] = None,
    check_out: Optional[datetime] = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    return RoomRegistry(db).find_available(ctx.operator_id, room_type, check_in, check_out)


@router.get("/customers", response_model=List[CustomerResponse])
def search_customers(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    return CustomerService(db).get_customers(ctx.operator_id, search=search)


@router.post("/customers", response_model=CustomerResponse, status_code=201)
def create_customer(
    data: CustomerCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    return CustomerService(db).create_customer(ctx.operator_id, data)


@router.get("/products", response_model=List[ProductResponse])
def list_products(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    return CatalogService(db).get_products(ctx.operator_id)


# ============== Bookings ==============

@router.post("/bookings", response_model=BookingResponse, status_code=201)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    """Check in a guest (or reserve with reserve_only)"""
    try:
        return LedgerService(db).create_booking(ctx, data)
    except FrontDeskError as e:
        raise http_error(e)


@router.get("/bookings/active", response_model=List[BookingResponse])
def list_active_bookings(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    return LedgerService(db).list_active_bookings(ctx)


@router.get("/bookings/search", response_model=List[BookingResponse])
def search_bookings(
    q: Optional[str] = None,
    status: Optional[BookingStatus] = None,
    room_number: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    return LedgerService(db).search_bookings(ctx, q=q, status=status,
                                             room_number=room_number, limit=limit)


@router.get("/bookings/{booking_id}")
def get_booking_detail(
    booking_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    """Booking with its ledger lines"""
    try:
        return LedgerService(db).get_booking_detail(ctx, booking_id)
    except FrontDeskError as e:
        raise http_error(e)


@router.get("/bookings/{booking_id}/ledger-check")
def verify_ledger(
    booking_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    try:
        check = LedgerService(db).verify_ledger(ctx, booking_id)
    except FrontDeskError as e:
        raise http_error(e)
    return {
        "booking_id": check.booking_id,
        "consistent": check.consistent,
        "stored": check.stored,
        "folded": check.folded,
        "mismatches": check.mismatches,
    }


@router.post("/bookings/{booking_id}/check-in", response_model=BookingResponse)
def check_in_reservation(
    booking_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    try:
        return LedgerService(db).check_in_reservation(ctx, booking_id)
    except FrontDeskError as e:
        raise http_error(e)


@router.post("/bookings/{booking_id}/charges", response_model=LedgerResult)
def add_charges(
    booking_id: int,
    data: ChargesCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    """Post POS items to a booking"""
    service = LedgerService(db)
    try:
        lines = service.add_charges(ctx, booking_id, data.items)
        booking = service.get_booking(ctx, booking_id)
    except FrontDeskError as e:
        raise http_error(e)
    return _ledger_result(
        booking, line_amount=sum((money(line.total_amount) for line in lines), money(0))
    )


@router.post("/bookings/{booking_id}/discounts", response_model=LedgerResult)
def apply_discount(
    booking_id: int,
    data: DiscountCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    service = LedgerService(db)
    try:
        line = service.apply_discount(
            ctx, booking_id, data.discount_type, data.discount_value, data.reason,
            authorization_token=data.authorization_token
        )
        booking = service.get_booking(ctx, booking_id)
    except FrontDeskError as e:
        raise http_error(e)
    return _ledger_result(booking, line, money(line.discount_amount))


@router.post("/payments", response_model=LedgerResult)
def apply_payment(
    data: PaymentCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    service = LedgerService(db)
    try:
        payment = service.apply_payment(
            ctx, data.booking_id, data.amount, data.payment_method,
            card_last_digits=data.card_last_digits,
            transaction_reference=data.transaction_reference,
            notes=data.notes,
            payment_splits=data.payment_splits
        )
        booking = service.get_booking(ctx, data.booking_id)
    except FrontDeskError as e:
        raise http_error(e)
    return _ledger_result(booking, payment, money(payment.amount))


@router.post("/refunds", response_model=LedgerResult)
def refund(
    data: RefundCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    service = LedgerService(db)
    try:
        line = service.refund(
            ctx, data.booking_id, data.amount, data.reason,
            authorization_token=data.authorization_token,
            payment_id=data.payment_id,
            notes=data.notes
        )
        booking = service.get_booking(ctx, data.booking_id)
    except FrontDeskError as e:
        raise http_error(e)
    return _ledger_result(booking, line, money(line.amount))


@router.post("/bookings/{booking_id}/checkout", response_model=BookingResponse)
def checkout(
    booking_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    try:
        return LedgerService(db).checkout(ctx, booking_id)
    except FrontDeskError as e:
        raise http_error(e)


# ============== Cash register ==============

@router.post("/cash-register/open", response_model=ShiftResponse, status_code=201)
def open_shift(
    data: ShiftOpen,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    try:
        return CashRegisterService(db).open(ctx, data.initial_cash)
    except FrontDeskError as e:
        raise http_error(e)


@router.get("/cash-register/current")
def current_shift(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    """Running totals of the open shift"""
    try:
        summary = CashRegisterService(db).current_summary(ctx)
    except FrontDeskError as e:
        raise http_error(e)
    return {
        "shift_id": summary.shift_id,
        "opening_time": summary.opening_time,
        "initial_cash": summary.initial_cash,
        "payments_by_method": summary.by_method,
        "expected_cash": summary.expected_cash,
        "total_collected": summary.total_collected,
        "total_transactions": summary.total_transactions,
    }


@router.post("/cash-register/close", response_model=ShiftResponse)
def close_shift(
    data: ShiftClose,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context)
):
    try:
        return CashRegisterService(db).close(ctx, data.actual_cash, data.notes)
    except FrontDeskError as e:
        raise http_error(e)
