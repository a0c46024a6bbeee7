"""
Domain events
Payload contracts for events published after a front-desk transaction commits.
The four notification events (payment_recorded, charge_added, checkout_completed,
operator_checkout_summary) are the contract consumed by the NotificationPort.
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, Dict, Any, List


class EventType(str, Enum):
    """Event types"""
    # rooms
    ROOM_STATUS_CHANGED = "room_status_changed"

    # bookings and ledger
    BOOKING_CREATED = "booking_created"
    BOOKING_CHECKED_IN = "booking_checked_in"
    CHARGE_ADDED = "charge_added"
    PAYMENT_RECORDED = "payment_recorded"
    DISCOUNT_APPLIED = "discount_applied"
    REFUND_PROCESSED = "refund_processed"
    CHECKOUT_COMPLETED = "checkout_completed"
    OPERATOR_CHECKOUT_SUMMARY = "operator_checkout_summary"

    # cash register
    SHIFT_OPENED = "shift_opened"
    SHIFT_CLOSED = "shift_closed"
    SHIFT_REVIEWED = "shift_reviewed"


NOTIFICATION_EVENTS = (
    EventType.PAYMENT_RECORDED,
    EventType.CHARGE_ADDED,
    EventType.CHECKOUT_COMPLETED,
    EventType.OPERATOR_CHECKOUT_SUMMARY,
)


def _jsonable(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


@dataclass
class BaseEventData:
    """Event payload base"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {key: _jsonable(value) for key, value in asdict(self).items()}


@dataclass
class RoomStatusChangedData(BaseEventData):
    room_id: int = 0
    room_number: str = ""
    old_status: str = ""
    new_status: str = ""
    changed_by: Optional[int] = None
    reason: str = ""


@dataclass
class BookingCreatedData(BaseEventData):
    booking_id: int = 0
    booking_code: str = ""
    room_id: int = 0
    room_number: str = ""
    customer_id: int = 0
    customer_name: str = ""
    status: str = ""
    total_amount: Decimal = Decimal("0")
    cashier_id: int = 0


@dataclass
class ChargeAddedData(BaseEventData):
    booking_id: int = 0
    booking_code: str = ""
    room_number: str = ""
    customer_name: str = ""
    recipient_phone: Optional[str] = None
    charge_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    cashier_id: int = 0


@dataclass
class PaymentRecordedData(BaseEventData):
    booking_id: int = 0
    booking_code: str = ""
    payment_id: int = 0
    room_number: str = ""
    customer_name: str = ""
    recipient_phone: Optional[str] = None
    amount: Decimal = Decimal("0")
    payment_method: str = ""
    total_paid: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    cashier_id: int = 0
    splits: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class DiscountAppliedData(BaseEventData):
    booking_id: int = 0
    booking_code: str = ""
    discount_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    cashier_id: int = 0
    authorized_by: Optional[int] = None


@dataclass
class RefundProcessedData(BaseEventData):
    booking_id: int = 0
    booking_code: str = ""
    refund_id: int = 0
    amount: Decimal = Decimal("0")
    amount_paid: Decimal = Decimal("0")
    cashier_id: int = 0
    authorized_by: int = 0


@dataclass
class CheckoutCompletedData(BaseEventData):
    booking_id: int = 0
    booking_code: str = ""
    room_number: str = ""
    customer_name: str = ""
    recipient_phone: Optional[str] = None
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    total_amount: Decimal = Decimal("0")
    amount_paid: Decimal = Decimal("0")
    cashier_id: int = 0


@dataclass
class OperatorCheckoutSummaryData(BaseEventData):
    """Guest identity for the operator's own audit trail"""
    booking_id: int = 0
    booking_code: str = ""
    recipient_phone: Optional[str] = None
    customer_name: str = ""
    document_type: Optional[str] = None
    document_number: Optional[str] = None
    age: Optional[int] = None
    nationality: Optional[str] = None
    origin: Optional[str] = None
    room_number: str = ""
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    total_amount: Decimal = Decimal("0")
    payment_methods: List[str] = field(default_factory=list)
    charges: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ShiftEventData(BaseEventData):
    shift_id: int = 0
    cashier_id: int = 0
    status: str = ""
    initial_cash: Decimal = Decimal("0")
    expected_cash: Optional[Decimal] = None
    actual_cash: Optional[Decimal] = None
    variance: Optional[Decimal] = None
    reviewed_by: Optional[int] = None
