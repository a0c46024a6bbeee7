"""
Domain objects
Every table carries operator_id: the tenant (hotel account) that owns the row.
Ledger lines (charges, discounts, payments, refunds) are append-only and owned by
their booking.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Tuple
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship
from frontdesk.database import Base


def _enum(enum_cls):
    """Store enum values (not names) so raw SQL filters read naturally."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=30,
    )


# ============== Enums ==============

class UserRole(str, Enum):
    """Principal role"""
    OPERATOR = "operator"      # property owner
    CASHIER = "cashier"        # front-desk cashier


class RoomStatus(str, Enum):
    """Room status"""
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class RoomKind(str, Enum):
    """Room type"""
    SIMPLE = "simple"
    DOUBLE = "double"
    SUITE = "suite"
    EXECUTIVE = "executive"


class StayType(str, Enum):
    """Stay tariff"""
    DAILY = "daily"
    THREE_HOURS = "3_hours"
    SIX_HOURS = "6_hours"


class BookingStatus(str, Enum):
    """Booking status"""
    RESERVED = "reserved"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """Payment method"""
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    CHECK = "check"
    OTHER = "other"
    MIXED = "mixed"           # several methods, see PaymentSplit


class DiscountType(str, Enum):
    """Discount type"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ProductCategory(str, Enum):
    """POS product category"""
    MINIBAR = "minibar"
    RESTAURANT = "restaurant"
    LAUNDRY = "laundry"
    SPA = "spa"
    OTHER = "other"


class ShiftStatus(str, Enum):
    """Cash register shift status"""
    OPEN = "open"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


ACTIVE_BOOKING_STATUSES = (BookingStatus.RESERVED, BookingStatus.CHECKED_IN)


# ============== Tenant and principals ==============

class Operator(Base):
    """
    Operator (tenant)
    The hotel account owning rooms, cashiers, customers and bookings.
    """
    __tablename__ = "operators"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    whatsapp = Column(String(20))                 # receives operator audit summaries
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)

    users = relationship("User", back_populates="operator")


class User(Base):
    """
    Principal: the operator's owner account or one of its cashiers.
    The owner account's password is the step-up credential.
    """
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("operator_id", "username", name="uq_user_username_per_operator"),
    )

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    username = Column(String(50), nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    phone = Column(String(20))
    email = Column(String(100))
    role = Column(_enum(UserRole), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    operator = relationship("Operator", back_populates="users")
    permission = relationship(
        "CashierPermission", back_populates="user", uselist=False,
        cascade="all, delete-orphan"
    )


class CashierPermission(Base):
    """
    Cashier capability record
    One row per cashier; operators implicitly hold every capability.
    """
    __tablename__ = "cashier_permissions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    can_create_bookings = Column(Boolean, default=True)
    can_modify_bookings = Column(Boolean, default=False)
    can_cancel_bookings = Column(Boolean, default=False)
    can_apply_discounts = Column(Boolean, default=False)
    max_discount_percentage = Column(Numeric(5, 2), default=0)
    can_process_refunds = Column(Boolean, default=False)
    can_view_reports = Column(Boolean, default=False)
    can_manage_inventory = Column(Boolean, default=False)

    user = relationship("User", back_populates="permission")


# ============== Inventory ==============

class Room(Base):
    """
    Room
    status is mutated only through RoomRegistry.
    """
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("operator_id", "room_number", name="uq_room_number_per_operator"),
    )

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    room_number = Column(String(10), nullable=False)
    room_type = Column(_enum(RoomKind), nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)          # nightly tariff
    short_stay_3h_price = Column(Numeric(10, 2))
    short_stay_6h_price = Column(Numeric(10, 2))
    floor = Column(Integer)
    max_occupancy = Column(Integer, default=2)
    description = Column(Text)
    status = Column(_enum(RoomStatus), nullable=False, default=RoomStatus.AVAILABLE)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    bookings = relationship("Booking", back_populates="room")


class Product(Base):
    """POS catalog item"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    category = Column(_enum(ProductCategory), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    cost = Column(Numeric(10, 2), default=0)
    tax_rate = Column(Numeric(5, 2), default=0)                  # percent
    stock_quantity = Column(Integer, default=0)
    track_inventory = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)


# ============== Guests and stays ==============

class Customer(Base):
    """
    Customer
    Aggregates (total_stays, total_spent, is_frequent) are updated at checkout.
    """
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    full_name = Column(String(100), nullable=False)
    document_type = Column(String(20), default="CI")
    document_number = Column(String(50))
    phone = Column(String(20))
    whatsapp = Column(String(20))
    email = Column(String(100))
    address = Column(String(200))
    city = Column(String(100))
    country = Column(String(100))
    age = Column(Integer)
    nationality = Column(String(50))
    origin = Column(String(100))
    total_stays = Column(Integer, default=0)
    total_spent = Column(Numeric(12, 2), default=0)
    last_stay_date = Column(Date)
    is_frequent = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)

    bookings = relationship("Booking", back_populates="customer")


class Booking(Base):
    """
    Booking - aggregate root of a stay and its ledger
    total_amount and amount_paid are incremental counters over the ledger lines;
    balance is always derived. version_id guards against lost updates.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_code = Column(String(40), unique=True, nullable=False)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    cashier_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    check_in = Column(DateTime, nullable=False)
    expected_checkout = Column(DateTime)
    actual_checkout = Column(DateTime)
    stay_type = Column(_enum(StayType), nullable=False, default=StayType.DAILY)
    number_of_nights = Column(Integer, default=1)
    number_of_guests = Column(Integer, default=1)
    base_price = Column(Numeric(10, 2), nullable=False)          # unit tariff
    additional_income = Column(Numeric(10, 2), default=0)
    additional_charges = Column(Numeric(10, 2), default=0)
    discounts = Column(Numeric(10, 2), default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(_enum(BookingStatus), nullable=False, default=BookingStatus.CHECKED_IN)
    notes = Column(Text)
    guest_age = Column(Integer)
    guest_nationality = Column(String(50))
    guest_origin = Column(String(100))
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __mapper_args__ = {"version_id_col": version_id}

    room = relationship("Room", back_populates="bookings")
    customer = relationship("Customer", back_populates="bookings")
    cashier = relationship("User", foreign_keys=[cashier_id])
    charges = relationship(
        "BookingCharge", back_populates="booking", cascade="all, delete-orphan",
        order_by="BookingCharge.id"
    )
    discount_lines = relationship(
        "BookingDiscount", back_populates="booking", cascade="all, delete-orphan",
        order_by="BookingDiscount.id"
    )
    payments = relationship(
        "Payment", back_populates="booking", cascade="all, delete-orphan",
        order_by="Payment.id"
    )
    refunds = relationship(
        "Refund", back_populates="booking", cascade="all, delete-orphan",
        order_by="Refund.id"
    )

    @property
    def balance(self) -> Decimal:
        """Outstanding balance"""
        return Decimal(self.total_amount or 0) - Decimal(self.amount_paid or 0)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES


# ============== Ledger lines ==============

class BookingCharge(Base):
    """Charge line (POS item or service)"""
    __tablename__ = "booking_charges"

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"))
    cashier_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    charge_type = Column(String(20), default="product")
    description = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), default=0)
    tax_amount = Column(Numeric(10, 2), default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.now)

    booking = relationship("Booking", back_populates="charges")
    product = relationship("Product")


class BookingDiscount(Base):
    """Discount line"""
    __tablename__ = "booking_discounts"

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    cashier_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    authorized_by = Column(Integer, ForeignKey("users.id"))
    discount_type = Column(_enum(DiscountType), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=False)
    requires_authorization = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)

    booking = relationship("Booking", back_populates="discount_lines")


class Payment(Base):
    """Payment line"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    cashier_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(_enum(PaymentMethod), nullable=False)
    card_last_digits = Column(String(4))
    transaction_reference = Column(String(100))
    notes = Column(Text)
    payment_date = Column(DateTime, default=datetime.now, index=True)

    booking = relationship("Booking", back_populates="payments")
    cashier = relationship("User")
    splits = relationship(
        "PaymentSplit", back_populates="payment", cascade="all, delete-orphan",
        order_by="PaymentSplit.id"
    )

    def portions(self) -> List[Tuple[PaymentMethod, Decimal]]:
        """(method, amount) pairs; a mixed payment yields one pair per split"""
        if self.splits:
            return [(s.payment_method, Decimal(s.amount)) for s in self.splits]
        return [(self.payment_method, Decimal(self.amount))]


class PaymentSplit(Base):
    """One method's share of a mixed payment"""
    __tablename__ = "payment_splits"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    payment_method = Column(_enum(PaymentMethod), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    card_last_digits = Column(String(4))
    transaction_reference = Column(String(100))

    payment = relationship("Payment", back_populates="splits")


class Refund(Base):
    """Refund line; always carries the step-up authorizer"""
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"))
    cashier_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    authorized_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)

    booking = relationship("Booking", back_populates="refunds")


# ============== Cash register ==============

class CashRegisterShift(Base):
    """
    Cash register shift
    At most one open shift per cashier (partial unique index below).
    Closed shifts wait for operator review; shifts are never deleted.
    """
    __tablename__ = "cash_register_shifts"
    __table_args__ = (
        Index(
            "uq_open_shift_per_cashier", "cashier_id", unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    cashier_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    opening_time = Column(DateTime, nullable=False)
    initial_cash = Column(Numeric(10, 2), nullable=False)
    closing_time = Column(DateTime)
    actual_cash = Column(Numeric(10, 2))
    expected_cash = Column(Numeric(10, 2))
    variance = Column(Numeric(10, 2))
    total_cash_payments = Column(Numeric(10, 2), default=0)
    total_card_payments = Column(Numeric(10, 2), default=0)
    total_transfer_payments = Column(Numeric(10, 2), default=0)
    total_check_payments = Column(Numeric(10, 2), default=0)
    total_other_payments = Column(Numeric(10, 2), default=0)
    notes = Column(Text)
    status = Column(_enum(ShiftStatus), nullable=False, default=ShiftStatus.OPEN)
    reviewed_by = Column(Integer, ForeignKey("users.id"))
    reviewed_at = Column(DateTime)

    cashier = relationship("User", foreign_keys=[cashier_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])
