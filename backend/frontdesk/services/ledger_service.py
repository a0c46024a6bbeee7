"""
Ledger service - bookings and their ledger
A booking is the aggregate root of a stay: its base charge plus append-only charge,
discount, payment and refund lines. total_amount and amount_paid are incremental
counters kept in the same transaction as the line that moves them; fold_ledger
recomputes them from the lines so the counters can always be verified.

Invariant: balance = total_amount - amount_paid >= 0, checked before every commit.

Each mutation locks the booking row, carries the mapper version counter, runs inside
one transaction and publishes its event only after the commit.
"""
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session

from frontdesk.config import settings
from frontdesk.errors import (
    BalanceNotSettled, BookingNotActive, InsufficientStock, InvalidTransition,
    InvariantViolation, NotFound, OverpaymentRejected, RefundExceedsPaid,
    ResultingNegativeBalance, ValidationError
)
from frontdesk.models.events import (
    EventType, BookingCreatedData, ChargeAddedData, PaymentRecordedData,
    DiscountAppliedData, RefundProcessedData, CheckoutCompletedData,
    OperatorCheckoutSummaryData
)
from frontdesk.models.ontology import (
    ACTIVE_BOOKING_STATUSES, Booking, BookingCharge, BookingDiscount, BookingStatus,
    Customer, DiscountType, Operator, Payment, PaymentMethod, PaymentSplit, Product, Refund,
    Room, StayType
)
from frontdesk.models.schemas import BookingCreate, ChargeItem, PaymentSplitCreate
from frontdesk.security.authorization import (
    ActorContext, AuthorizationGate, Operation, OperationRequest, authorization_gate
)
from frontdesk.security.step_up import verify_step_up_token
from frontdesk.services.event_bus import Event, event_bus
from frontdesk.services.pricing import calculate_stay_price, money
from frontdesk.services.room_registry import RoomRegistry
from frontdesk.services.unit_of_work import atomic

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

_SHORT_STAY_DURATION = {
    StayType.THREE_HOURS: timedelta(hours=3),
    StayType.SIX_HOURS: timedelta(hours=6),
}


@dataclass
class LedgerTotals:
    """Booking counters as recomputed from its lines"""
    base_amount: Decimal = ZERO
    additional_income: Decimal = ZERO
    additional_charges: Decimal = ZERO
    discounts: Decimal = ZERO
    payments: Decimal = ZERO
    refunds: Decimal = ZERO
    total_amount: Decimal = ZERO
    amount_paid: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.total_amount - self.amount_paid


@dataclass
class LedgerCheck:
    """Stored counters compared with the fold of the lines"""
    booking_id: int
    consistent: bool
    stored: Dict[str, Decimal]
    folded: Dict[str, Decimal]
    mismatches: List[str] = field(default_factory=list)


def fold_ledger(booking: Booking) -> LedgerTotals:
    """
    Recompute a booking's totals from its lines.

    total_amount = base_price * nights + additional_income + charges - discounts
    amount_paid  = payments - refunds
    """
    base_amount = money(Decimal(booking.base_price) * int(booking.number_of_nights or 1))
    additional_income = money(booking.additional_income)
    charges = money(sum((Decimal(c.total_amount) for c in booking.charges), ZERO))
    discounts = money(sum((Decimal(d.discount_amount) for d in booking.discount_lines), ZERO))
    payments = money(sum((Decimal(p.amount) for p in booking.payments), ZERO))
    refunds = money(sum((Decimal(r.amount) for r in booking.refunds), ZERO))

    return LedgerTotals(
        base_amount=base_amount,
        additional_income=additional_income,
        additional_charges=charges,
        discounts=discounts,
        payments=payments,
        refunds=refunds,
        total_amount=money(base_amount + additional_income + charges - discounts),
        amount_paid=money(payments - refunds),
    )


def generate_booking_code() -> str:
    """BK<epoch millis><3 random digits>"""
    return f"BK{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


class LedgerService:
    """Booking ledger"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 gate: Optional[AuthorizationGate] = None):
        self.db = db
        # injectable for tests
        self._publish_event = event_publisher or event_bus.publish
        self.gate = gate or authorization_gate
        self.rooms = RoomRegistry(db, event_publisher=self._publish_event)

    # ============== Helpers ==============

    def _load_booking(self, ctx: ActorContext, booking_id: int, lock: bool = False) -> Booking:
        query = self.db.query(Booking).filter(
            Booking.id == booking_id,
            Booking.operator_id == ctx.operator_id
        )
        if lock:
            query = query.with_for_update().populate_existing()
        booking = query.first()
        if not booking:
            raise NotFound("Booking not found", {"booking_id": booking_id})
        return booking

    @staticmethod
    def _require_active(booking: Booking) -> None:
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            raise BookingNotActive(
                f"Booking {booking.booking_code} is {booking.status.value}",
                {"booking_id": booking.id, "status": booking.status.value}
            )

    @staticmethod
    def _assert_balance(booking: Booking) -> None:
        if money(booking.total_amount) - money(booking.amount_paid) < 0:
            raise InvariantViolation(
                "Booking balance cannot be negative",
                {"booking_id": booking.id, "balance": booking.balance}
            )

    def _publish(self, event_type: EventType, data, operator_id: int) -> None:
        self._publish_event(Event(
            event_type=event_type,
            timestamp=datetime.now(),
            data=data.to_dict(),
            source="ledger_service",
            operator_id=operator_id
        ))

    @staticmethod
    def _recipient(customer: Customer) -> Optional[str]:
        return customer.whatsapp or customer.phone

    # ============== Booking lifecycle ==============

    def create_booking(self, ctx: ActorContext, data: BookingCreate) -> Booking:
        """
        Create a booking and take its room.

        The room is taken (available -> occupied, or -> reserved with reserve_only)
        with a compare-and-set in the same transaction as the booking insert; if
        either fails, nothing persists.

        Raises:
            PermissionDenied: actor may not create bookings
            RoomNotAvailable: the room is not available
            NotFound: room or customer not in this tenant
            ValidationError: bad stay parameters
        """
        self.gate.check(ctx.capabilities, OperationRequest(Operation.CREATE_BOOKING))

        with atomic(self.db, "create_booking"):
            if data.reserve_only:
                transition = self.rooms.reserve(ctx.operator_id, data.room_id)
            else:
                transition = self.rooms.occupy(ctx.operator_id, data.room_id)
            room = transition.room

            customer = self.db.query(Customer).filter(
                Customer.id == data.customer_id,
                Customer.operator_id == ctx.operator_id
            ).first()
            if not customer:
                raise NotFound("Customer not found", {"customer_id": data.customer_id})

            quote = calculate_stay_price(
                room, data.stay_type, data.number_of_nights, data.additional_income
            )

            check_in = data.check_in or datetime.now()
            expected_checkout = data.expected_checkout or (
                check_in + _SHORT_STAY_DURATION.get(quote.stay_type, timedelta(days=quote.nights))
            )
            if expected_checkout <= check_in:
                raise ValidationError(
                    "Expected checkout must be after check-in",
                    {"check_in": check_in.isoformat(),
                     "expected_checkout": expected_checkout.isoformat()}
                )

            booking = Booking(
                booking_code=generate_booking_code(),
                operator_id=ctx.operator_id,
                cashier_id=ctx.actor_id,
                customer_id=customer.id,
                room_id=room.id,
                check_in=check_in,
                expected_checkout=expected_checkout,
                stay_type=quote.stay_type,
                number_of_nights=quote.nights,
                number_of_guests=data.number_of_guests,
                base_price=quote.unit_price,
                additional_income=quote.additional_income,
                additional_charges=ZERO,
                discounts=ZERO,
                total_amount=quote.total,
                amount_paid=ZERO,
                status=BookingStatus.RESERVED if data.reserve_only else BookingStatus.CHECKED_IN,
                notes=data.notes,
                guest_age=data.guest_age if data.guest_age is not None else customer.age,
                guest_nationality=data.guest_nationality or customer.nationality,
                guest_origin=data.guest_origin or customer.origin,
            )
            self.db.add(booking)
            self.db.flush()

        self.db.refresh(booking)
        logger.info(
            f"Booking {booking.booking_code} created: room {room.room_number}, "
            f"total {booking.total_amount}, status {booking.status.value}"
        )
        self.rooms.announce(transition, ctx.actor_id, reason=booking.booking_code)
        self._publish(EventType.BOOKING_CREATED, BookingCreatedData(
            booking_id=booking.id,
            booking_code=booking.booking_code,
            room_id=room.id,
            room_number=room.room_number,
            customer_id=customer.id,
            customer_name=customer.full_name,
            status=booking.status.value,
            total_amount=booking.total_amount,
            cashier_id=ctx.actor_id
        ), ctx.operator_id)
        return booking

    def check_in_reservation(self, ctx: ActorContext, booking_id: int) -> Booking:
        """
        Check in a reserved booking: booking reserved -> checked_in, room
        reserved -> occupied.

        Raises:
            InvalidTransition: the booking (or its room) is not reserved
        """
        self.gate.check(ctx.capabilities, OperationRequest(Operation.CREATE_BOOKING))

        with atomic(self.db, "check_in_reservation"):
            booking = self._load_booking(ctx, booking_id, lock=True)
            if booking.status != BookingStatus.RESERVED:
                raise InvalidTransition(
                    f"Booking {booking.booking_code} is {booking.status.value}, not reserved",
                    {"booking_id": booking.id, "status": booking.status.value}
                )
            booking.status = BookingStatus.CHECKED_IN
            booking.check_in = datetime.now()
            self.db.flush()
            transition = self.rooms.occupy_reserved(ctx.operator_id, booking.room_id)

        logger.info(f"Booking {booking.booking_code} checked in")
        self.rooms.announce(transition, ctx.actor_id, reason=booking.booking_code)
        self._publish(EventType.BOOKING_CHECKED_IN, BookingCreatedData(
            booking_id=booking.id,
            booking_code=booking.booking_code,
            room_id=booking.room_id,
            room_number=booking.room.room_number,
            customer_id=booking.customer_id,
            customer_name=booking.customer.full_name,
            status=booking.status.value,
            total_amount=booking.total_amount,
            cashier_id=ctx.actor_id
        ), ctx.operator_id)
        return booking

    # ============== Ledger lines ==============

    def add_charges(self, ctx: ActorContext, booking_id: int,
                    items: List[ChargeItem]) -> List[BookingCharge]:
        """
        Post POS items or services to a booking.

        line total = unit_price * quantity * (1 + tax_rate / 100). A product's own
        price and tax rate are used unless the item overrides the price; tracked
        products lose stock.

        Raises:
            BookingNotActive: booking is checked out or cancelled
            InsufficientStock: a tracked product does not have enough stock
        """
        if not items:
            raise ValidationError("At least one item is required")

        with atomic(self.db, "add_charges"):
            booking = self._load_booking(ctx, booking_id, lock=True)
            self._require_active(booking)

            lines = []
            for item in items:
                lines.append(self._build_charge(ctx, booking, item))

            charged = money(sum((line.total_amount for line in lines), ZERO))
            booking.additional_charges = money(booking.additional_charges) + charged
            booking.total_amount = money(booking.total_amount) + charged
            self._assert_balance(booking)
            self.db.flush()

        logger.info(f"Booking {booking.booking_code}: {len(lines)} charge(s) for {charged}")
        customer = booking.customer
        self._publish(EventType.CHARGE_ADDED, ChargeAddedData(
            booking_id=booking.id,
            booking_code=booking.booking_code,
            room_number=booking.room.room_number,
            customer_name=customer.full_name,
            recipient_phone=self._recipient(customer),
            charge_amount=charged,
            total_amount=money(booking.total_amount),
            balance=money(booking.balance),
            cashier_id=ctx.actor_id
        ), ctx.operator_id)
        return lines

    def _build_charge(self, ctx: ActorContext, booking: Booking, item: ChargeItem) -> BookingCharge:
        if item.quantity is None or item.quantity < 1:
            raise ValidationError("Quantity must be at least 1", {"quantity": item.quantity})

        product = None
        if item.product_id is not None:
            product = self.db.query(Product).filter(
                Product.id == item.product_id,
                Product.operator_id == ctx.operator_id,
                Product.is_active == True  # noqa: E712
            ).with_for_update().first()
            if not product:
                raise NotFound("Product not found", {"product_id": item.product_id})

            unit_price = money(item.unit_price if item.unit_price is not None else product.price)
            tax_rate = Decimal(product.tax_rate or 0)
            description = item.description or product.name

            if product.track_inventory:
                if (product.stock_quantity or 0) < item.quantity:
                    raise InsufficientStock(
                        f"Insufficient stock for {product.name}",
                        {"product_id": product.id, "available": product.stock_quantity,
                         "requested": item.quantity}
                    )
                product.stock_quantity = product.stock_quantity - item.quantity
        else:
            if item.unit_price is None:
                raise ValidationError("Unit price is required for a custom charge")
            if not item.description:
                raise ValidationError("Description is required for a custom charge")
            unit_price = money(item.unit_price)
            tax_rate = Decimal(item.tax_rate or 0)
            description = item.description

        if unit_price < 0:
            raise ValidationError("Unit price cannot be negative", {"unit_price": unit_price})

        subtotal = money(unit_price * item.quantity)
        total = money(unit_price * item.quantity * (1 + tax_rate / 100))
        line = BookingCharge(
            operator_id=ctx.operator_id,
            booking_id=booking.id,
            product_id=product.id if product else None,
            cashier_id=ctx.actor_id,
            charge_type="product" if product else "service",
            description=description,
            quantity=item.quantity,
            unit_price=unit_price,
            tax_rate=tax_rate,
            tax_amount=total - subtotal,
            total_amount=total,
        )
        booking.charges.append(line)
        return line

    def apply_payment(self, ctx: ActorContext, booking_id: int, amount: Decimal,
                      payment_method: PaymentMethod, card_last_digits: Optional[str] = None,
                      transaction_reference: Optional[str] = None,
                      notes: Optional[str] = None,
                      payment_splits: Optional[List[PaymentSplitCreate]] = None) -> Payment:
        """
        Record a payment.

        A mixed payment (payment_method=mixed) carries two or more splits, one per
        method, that add up to the payment amount. The booking counters only see the
        payment amount; the cash register tallies the splits.

        Raises:
            ValidationError: amount <= 0, or splits that do not match the payment
            BookingNotActive: booking is checked out or cancelled
            OverpaymentRejected: amount exceeds the pending balance
        """
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", {"amount": amount})
        payment_method = PaymentMethod(payment_method)
        splits = self._validate_splits(amount, payment_method, payment_splits or [])

        with atomic(self.db, "apply_payment"):
            booking = self._load_booking(ctx, booking_id, lock=True)
            self._require_active(booking)

            balance = money(booking.balance)
            if amount > balance:
                raise OverpaymentRejected(
                    f"Payment of {amount} exceeds the pending balance of {balance}",
                    {"booking_id": booking.id, "amount": amount, "balance": balance}
                )

            payment = Payment(
                operator_id=ctx.operator_id,
                booking_id=booking.id,
                cashier_id=ctx.actor_id,
                amount=amount,
                payment_method=payment_method,
                card_last_digits=card_last_digits,
                transaction_reference=transaction_reference,
                notes=notes,
                payment_date=datetime.now(),
            )
            payment.splits = splits
            booking.payments.append(payment)
            booking.amount_paid = money(booking.amount_paid) + amount
            self._assert_balance(booking)
            self.db.flush()

        logger.info(
            f"Booking {booking.booking_code}: payment {amount} ({payment_method.value}), "
            f"balance {booking.balance}"
        )
        customer = booking.customer
        self._publish(EventType.PAYMENT_RECORDED, PaymentRecordedData(
            booking_id=booking.id,
            booking_code=booking.booking_code,
            payment_id=payment.id,
            room_number=booking.room.room_number,
            customer_name=customer.full_name,
            recipient_phone=self._recipient(customer),
            amount=amount,
            payment_method=payment_method.value,
            total_paid=money(booking.amount_paid),
            total_amount=money(booking.total_amount),
            balance=money(booking.balance),
            cashier_id=ctx.actor_id,
            splits=[
                {"payment_method": method.value, "amount": money(share)}
                for method, share in payment.portions()
            ] if splits else []
        ), ctx.operator_id)
        return payment

    @staticmethod
    def _validate_splits(amount: Decimal, payment_method: PaymentMethod,
                         payment_splits: List[PaymentSplitCreate]) -> List[PaymentSplit]:
        if payment_method != PaymentMethod.MIXED:
            if payment_splits:
                raise ValidationError(
                    "Payment splits require the mixed payment method",
                    {"payment_method": payment_method.value}
                )
            return []

        if len(payment_splits) < 2:
            raise ValidationError("A mixed payment needs at least two splits",
                                  {"splits": len(payment_splits)})
        splits = []
        for item in payment_splits:
            method = PaymentMethod(item.payment_method)
            share = money(item.amount)
            if method == PaymentMethod.MIXED:
                raise ValidationError("A split cannot itself be mixed")
            if share <= 0:
                raise ValidationError("Split amount must be positive", {"amount": share})
            splits.append(PaymentSplit(
                payment_method=method,
                amount=share,
                card_last_digits=item.card_last_digits,
                transaction_reference=item.transaction_reference,
            ))

        split_total = sum((s.amount for s in splits), ZERO)
        if split_total != amount:
            raise ValidationError(
                f"Splits add up to {split_total}, payment is {amount}",
                {"amount": amount, "split_total": split_total}
            )
        return splits

    def apply_discount(self, ctx: ActorContext, booking_id: int, discount_type: DiscountType,
                       discount_value: Decimal, reason: str,
                       authorization_token: Optional[str] = None) -> BookingDiscount:
        """
        Apply a discount to a booking.

        Both authorization checks are always evaluated: the actor's percentage cap
        (never overridable) and, when the discount exceeds the configured share of the
        booking total, a valid step-up token.

        Raises:
            PermissionDenied: actor may not apply discounts
            ExceedsDiscountLimit: percentage above the actor's cap
            AuthorizationRequired / StepUpInvalid: step-up needed and missing or invalid
            ResultingNegativeBalance: the discount would push the total below what was paid
        """
        discount_type = DiscountType(discount_type)
        discount_value = Decimal(discount_value)
        if discount_value <= 0:
            raise ValidationError("Discount value must be positive", {"value": discount_value})
        if discount_type == DiscountType.PERCENTAGE and discount_value > 100:
            raise ValidationError("Percentage discount cannot exceed 100", {"value": discount_value})
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for a discount")

        with atomic(self.db, "apply_discount"):
            booking = self._load_booking(ctx, booking_id, lock=True)
            self._require_active(booking)

            total = money(booking.total_amount)
            if discount_type == DiscountType.PERCENTAGE:
                discount_amount = money(total * discount_value / 100)
            else:
                discount_amount = money(discount_value)

            decision = self.gate.evaluate(ctx.capabilities, OperationRequest(
                operation=Operation.APPLY_DISCOUNT,
                discount_type=discount_type,
                discount_value=discount_value,
                discount_amount=discount_amount,
                reference_total=total,
            ))
            decision.raise_for_violations()

            authorized_by = None
            if decision.requires_step_up:
                authorized_by = verify_step_up_token(authorization_token, ctx.operator_id, self.db)

            new_total = total - discount_amount
            if new_total < money(booking.amount_paid):
                raise ResultingNegativeBalance(
                    "The discount would leave the booking total below the amount already paid",
                    {"booking_id": booking.id, "discount_amount": discount_amount,
                     "total_amount": total, "amount_paid": money(booking.amount_paid)}
                )

            line = BookingDiscount(
                operator_id=ctx.operator_id,
                booking_id=booking.id,
                cashier_id=ctx.actor_id,
                authorized_by=authorized_by,
                discount_type=discount_type,
                discount_value=discount_value,
                discount_amount=discount_amount,
                reason=reason.strip(),
                requires_authorization=decision.requires_step_up,
            )
            booking.discount_lines.append(line)
            booking.discounts = money(booking.discounts) + discount_amount
            booking.total_amount = new_total
            self._assert_balance(booking)
            self.db.flush()

        logger.info(
            f"Booking {booking.booking_code}: discount {discount_amount} "
            f"(authorized by {authorized_by})"
        )
        self._publish(EventType.DISCOUNT_APPLIED, DiscountAppliedData(
            booking_id=booking.id,
            booking_code=booking.booking_code,
            discount_amount=discount_amount,
            total_amount=money(booking.total_amount),
            cashier_id=ctx.actor_id,
            authorized_by=authorized_by
        ), ctx.operator_id)
        return line

    def refund(self, ctx: ActorContext, booking_id: int, amount: Decimal, reason: str,
               authorization_token: Optional[str] = None, payment_id: Optional[int] = None,
               notes: Optional[str] = None) -> Refund:
        """
        Refund part of what was paid. Always requires step-up authorization.

        Raises:
            PermissionDenied: actor may not process refunds
            AuthorizationRequired / StepUpInvalid: no valid step-up token
            RefundExceedsPaid: amount above what was paid (or above the refunded payment)
        """
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Refund amount must be positive", {"amount": amount})
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for a refund")

        decision = self.gate.check(
            ctx.capabilities, OperationRequest(Operation.PROCESS_REFUND)
        )
        authorized_by = verify_step_up_token(authorization_token, ctx.operator_id, self.db) \
            if decision.requires_step_up else None

        with atomic(self.db, "refund"):
            booking = self._load_booking(ctx, booking_id, lock=True)
            self._require_active(booking)

            paid = money(booking.amount_paid)
            if amount > paid:
                raise RefundExceedsPaid(
                    f"Refund of {amount} exceeds the amount paid ({paid})",
                    {"booking_id": booking.id, "amount": amount, "amount_paid": paid}
                )

            if payment_id is not None:
                payment = next((p for p in booking.payments if p.id == payment_id), None)
                if payment is None:
                    raise NotFound("Payment not found on this booking", {"payment_id": payment_id})
                refunded = sum(
                    (Decimal(r.amount) for r in booking.refunds if r.payment_id == payment_id),
                    ZERO
                )
                refundable = money(Decimal(payment.amount) - refunded)
                if amount > refundable:
                    raise RefundExceedsPaid(
                        f"Refund of {amount} exceeds the refundable amount of the payment ({refundable})",
                        {"payment_id": payment_id, "amount": amount, "refundable": refundable}
                    )

            line = Refund(
                operator_id=ctx.operator_id,
                booking_id=booking.id,
                payment_id=payment_id,
                cashier_id=ctx.actor_id,
                authorized_by=authorized_by,
                amount=amount,
                reason=reason.strip(),
                notes=notes,
            )
            booking.refunds.append(line)
            booking.amount_paid = paid - amount
            self._assert_balance(booking)
            self.db.flush()

        logger.info(
            f"Booking {booking.booking_code}: refund {amount} authorized by {authorized_by}"
        )
        self._publish(EventType.REFUND_PROCESSED, RefundProcessedData(
            booking_id=booking.id,
            booking_code=booking.booking_code,
            refund_id=line.id,
            amount=amount,
            amount_paid=money(booking.amount_paid),
            cashier_id=ctx.actor_id,
            authorized_by=authorized_by
        ), ctx.operator_id)
        return line

    # ============== Checkout ==============

    def checkout(self, ctx: ActorContext, booking_id: int) -> Booking:
        """
        Check a guest out.

        Requires a checked-in booking with a zero balance. Releases the room and
        updates the customer's stay history.

        Raises:
            BookingNotActive: booking is not checked in (a second checkout lands here)
            BalanceNotSettled: balance pending, reported in details.pending_balance
        """
        with atomic(self.db, "checkout"):
            booking = self._load_booking(ctx, booking_id, lock=True)
            if booking.status != BookingStatus.CHECKED_IN:
                raise BookingNotActive(
                    f"Booking {booking.booking_code} is {booking.status.value}, not checked in",
                    {"booking_id": booking.id, "status": booking.status.value}
                )

            pending = money(booking.balance)
            if pending != 0:
                raise BalanceNotSettled(
                    f"Pending balance: {settings.CURRENCY_LABEL} {pending}",
                    {"booking_id": booking.id, "pending_balance": pending}
                )

            now = datetime.now()
            booking.status = BookingStatus.CHECKED_OUT
            booking.actual_checkout = now
            self.db.flush()

            transition = self.rooms.release(ctx.operator_id, booking.room_id)

            customer = booking.customer
            customer.total_stays = (customer.total_stays or 0) + 1
            customer.total_spent = money(customer.total_spent) + money(booking.amount_paid)
            customer.last_stay_date = now.date()
            customer.is_frequent = customer.total_stays >= settings.FREQUENT_GUEST_MIN_STAYS

        logger.info(f"Booking {booking.booking_code} checked out, room {transition.room.room_number} released")
        self.rooms.announce(transition, ctx.actor_id, reason=booking.booking_code)
        self._publish_checkout_events(ctx, booking)
        return booking

    def _publish_checkout_events(self, ctx: ActorContext, booking: Booking) -> None:
        customer = booking.customer
        room_number = booking.room.room_number

        self._publish(EventType.CHECKOUT_COMPLETED, CheckoutCompletedData(
            booking_id=booking.id,
            booking_code=booking.booking_code,
            room_number=room_number,
            customer_name=customer.full_name,
            recipient_phone=self._recipient(customer),
            check_in=booking.check_in,
            check_out=booking.actual_checkout,
            total_amount=money(booking.total_amount),
            amount_paid=money(booking.amount_paid),
            cashier_id=ctx.actor_id
        ), ctx.operator_id)

        operator = self.db.query(Operator).filter(Operator.id == ctx.operator_id).first()
        methods = []
        for payment in booking.payments:
            for method, _ in payment.portions():
                if method.value not in methods:
                    methods.append(method.value)

        self._publish(EventType.OPERATOR_CHECKOUT_SUMMARY, OperatorCheckoutSummaryData(
            booking_id=booking.id,
            booking_code=booking.booking_code,
            recipient_phone=operator.whatsapp if operator else None,
            customer_name=customer.full_name,
            document_type=customer.document_type,
            document_number=customer.document_number,
            age=booking.guest_age if booking.guest_age is not None else customer.age,
            nationality=booking.guest_nationality or customer.nationality,
            origin=booking.guest_origin or customer.origin,
            room_number=room_number,
            check_in=booking.check_in,
            check_out=booking.actual_checkout,
            total_amount=money(booking.total_amount),
            payment_methods=methods,
            charges=[
                {
                    "description": c.description,
                    "quantity": c.quantity,
                    "total_amount": money(c.total_amount),
                }
                for c in booking.charges
            ]
        ), ctx.operator_id)

    # ============== Reads ==============

    def get_booking(self, ctx: ActorContext, booking_id: int) -> Booking:
        return self._load_booking(ctx, booking_id)

    def get_booking_detail(self, ctx: ActorContext, booking_id: int) -> Dict[str, Any]:
        """Booking with its ledger lines and derived balance"""
        booking = self._load_booking(ctx, booking_id)

        return {
            'id': booking.id,
            'booking_code': booking.booking_code,
            'status': booking.status.value,
            'room_id': booking.room_id,
            'room_number': booking.room.room_number,
            'customer_id': booking.customer_id,
            'customer_name': booking.customer.full_name,
            'stay_type': booking.stay_type.value,
            'check_in': booking.check_in,
            'expected_checkout': booking.expected_checkout,
            'actual_checkout': booking.actual_checkout,
            'number_of_nights': booking.number_of_nights,
            'base_price': money(booking.base_price),
            'additional_income': money(booking.additional_income),
            'additional_charges': money(booking.additional_charges),
            'discounts': money(booking.discounts),
            'total_amount': money(booking.total_amount),
            'amount_paid': money(booking.amount_paid),
            'balance': money(booking.balance),
            'charges': [
                {
                    'id': c.id,
                    'product_id': c.product_id,
                    'description': c.description,
                    'quantity': c.quantity,
                    'unit_price': money(c.unit_price),
                    'tax_rate': Decimal(c.tax_rate or 0),
                    'tax_amount': money(c.tax_amount),
                    'total_amount': money(c.total_amount),
                    'created_at': c.created_at,
                }
                for c in booking.charges
            ],
            'discounts_applied': [
                {
                    'id': d.id,
                    'discount_type': d.discount_type.value,
                    'discount_value': Decimal(d.discount_value),
                    'discount_amount': money(d.discount_amount),
                    'reason': d.reason,
                    'authorized_by': d.authorized_by,
                    'created_at': d.created_at,
                }
                for d in booking.discount_lines
            ],
            'payments': [
                {
                    'id': p.id,
                    'amount': money(p.amount),
                    'payment_method': p.payment_method.value,
                    'splits': [
                        {'payment_method': s.payment_method.value, 'amount': money(s.amount)}
                        for s in p.splits
                    ],
                    'payment_date': p.payment_date,
                    'cashier_name': p.cashier.full_name if p.cashier else None,
                }
                for p in booking.payments
            ],
            'refunds': [
                {
                    'id': r.id,
                    'payment_id': r.payment_id,
                    'amount': money(r.amount),
                    'reason': r.reason,
                    'authorized_by': r.authorized_by,
                    'created_at': r.created_at,
                }
                for r in booking.refunds
            ],
        }

    def list_active_bookings(self, ctx: ActorContext) -> List[Booking]:
        return self.db.query(Booking).filter(
            Booking.operator_id == ctx.operator_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES)
        ).order_by(Booking.check_in.desc()).all()

    def search_bookings(self, ctx: ActorContext, q: Optional[str] = None,
                        status: Optional[BookingStatus] = None,
                        room_number: Optional[str] = None,
                        limit: int = 50) -> List[Booking]:
        """Search by booking code, guest name or document, optionally by status and room"""
        query = self.db.query(Booking).join(Room, Booking.room_id == Room.id).join(
            Customer, Booking.customer_id == Customer.id
        ).filter(Booking.operator_id == ctx.operator_id)

        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter(or_(
                Booking.booking_code.ilike(pattern),
                Customer.full_name.ilike(pattern),
                Customer.document_number.ilike(pattern)
            ))
        if status:
            query = query.filter(Booking.status == status)
        if room_number:
            query = query.filter(Room.room_number == room_number)

        return query.order_by(Booking.check_in.desc()).limit(limit).all()

    def verify_ledger(self, ctx: ActorContext, booking_id: int) -> LedgerCheck:
        """Compare the stored counters with the fold of the booking's lines"""
        booking = self._load_booking(ctx, booking_id)
        folded = fold_ledger(booking)

        stored = {
            "additional_charges": money(booking.additional_charges),
            "discounts": money(booking.discounts),
            "total_amount": money(booking.total_amount),
            "amount_paid": money(booking.amount_paid),
        }
        recomputed = {key: getattr(folded, key) for key in stored}
        mismatches = [key for key in stored if stored[key] != recomputed[key]]
        if mismatches:
            logger.warning(f"Booking {booking.booking_code}: ledger mismatch on {mismatches}")

        return LedgerCheck(
            booking_id=booking.id,
            consistent=not mismatches,
            stored=stored,
            folded=recomputed,
            mismatches=mismatches,
        )
