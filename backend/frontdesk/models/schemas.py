"""
Pydantic schemas
Request validation and response shapes. Malformed input is rejected here, before
any service runs.
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, ConfigDict, field_validator
from frontdesk.models.ontology import (
    RoomStatus, RoomKind, StayType, BookingStatus, PaymentMethod,
    DiscountType, ProductCategory, ShiftStatus, UserRole
)


# ============== Rooms ==============

class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=10)
    room_type: RoomKind
    base_price: Decimal = Field(..., ge=0)
    short_stay_3h_price: Optional[Decimal] = Field(None, ge=0)
    short_stay_6h_price: Optional[Decimal] = Field(None, ge=0)
    floor: Optional[int] = None
    max_occupancy: int = Field(default=2, ge=1)
    description: Optional[str] = None


class RoomResponse(BaseModel):
    id: int
    room_number: str
    room_type: RoomKind
    base_price: Decimal
    short_stay_3h_price: Optional[Decimal] = None
    short_stay_6h_price: Optional[Decimal] = None
    floor: Optional[int] = None
    max_occupancy: int
    description: Optional[str] = None
    status: RoomStatus
    model_config = ConfigDict(from_attributes=True)


# ============== Customers ==============

class CustomerCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    document_type: str = Field(default="CI", max_length=20)
    document_number: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    whatsapp: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    age: Optional[int] = Field(None, ge=0, le=150)
    nationality: Optional[str] = Field(None, max_length=50)
    origin: Optional[str] = Field(None, max_length=100)


class CustomerResponse(BaseModel):
    id: int
    full_name: str
    document_type: Optional[str] = None
    document_number: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    email: Optional[str] = None
    nationality: Optional[str] = None
    total_stays: int
    total_spent: Decimal
    last_stay_date: Optional[date] = None
    is_frequent: bool
    model_config = ConfigDict(from_attributes=True)


# ============== Products ==============

class ProductCreate(BaseModel):
    category: ProductCategory
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    stock_quantity: int = Field(default=0, ge=0)
    track_inventory: bool = False


class ProductResponse(BaseModel):
    id: int
    category: ProductCategory
    name: str
    price: Decimal
    tax_rate: Decimal
    stock_quantity: int
    track_inventory: bool
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


# ============== Cashiers ==============

class CashierPermissions(BaseModel):
    can_create_bookings: bool = True
    can_modify_bookings: bool = False
    can_cancel_bookings: bool = False
    can_apply_discounts: bool = False
    max_discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    can_process_refunds: bool = False
    can_view_reports: bool = False
    can_manage_inventory: bool = False
    model_config = ConfigDict(from_attributes=True)


class CashierCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=100)
    permissions: CashierPermissions = Field(default_factory=CashierPermissions)


class CashierResponse(BaseModel):
    id: int
    username: str
    full_name: str
    role: UserRole
    is_active: bool
    permission: Optional[CashierPermissions] = None
    model_config = ConfigDict(from_attributes=True)


# ============== Bookings ==============

class BookingCreate(BaseModel):
    customer_id: int
    room_id: int
    stay_type: StayType = StayType.DAILY
    check_in: Optional[datetime] = None
    expected_checkout: Optional[datetime] = None
    number_of_nights: int = Field(default=1, ge=1)
    number_of_guests: int = Field(default=1, ge=1)
    additional_income: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None
    guest_age: Optional[int] = Field(None, ge=0, le=150)
    guest_nationality: Optional[str] = Field(None, max_length=50)
    guest_origin: Optional[str] = Field(None, max_length=100)
    reserve_only: bool = False


class ChargeItem(BaseModel):
    product_id: Optional[int] = None
    description: Optional[str] = Field(None, max_length=200)
    quantity: int = Field(default=1, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class ChargesCreate(BaseModel):
    items: List[ChargeItem] = Field(..., min_length=1)


class PaymentSplitCreate(BaseModel):
    """One method's share of a mixed payment"""
    payment_method: PaymentMethod
    amount: Decimal = Field(..., gt=0)
    card_last_digits: Optional[str] = Field(None, min_length=4, max_length=4)
    transaction_reference: Optional[str] = Field(None, max_length=100)


class PaymentCreate(BaseModel):
    booking_id: int
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    card_last_digits: Optional[str] = Field(None, min_length=4, max_length=4)
    transaction_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    payment_splits: Optional[List[PaymentSplitCreate]] = None


class DiscountCreate(BaseModel):
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    authorization_token: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reason is required")
        return v


class RefundCreate(BaseModel):
    booking_id: int
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    notes: Optional[str] = None
    payment_id: Optional[int] = None
    authorization_token: Optional[str] = None


class StepUpRequest(BaseModel):
    password: str = Field(..., min_length=1)


class StepUpResponse(BaseModel):
    authorization_token: str
    authorized_by: int
    expires_at: datetime


class BookingResponse(BaseModel):
    id: int
    booking_code: str
    room_id: int
    customer_id: int
    cashier_id: int
    stay_type: StayType
    check_in: datetime
    expected_checkout: Optional[datetime] = None
    actual_checkout: Optional[datetime] = None
    number_of_nights: int
    base_price: Decimal
    additional_income: Decimal
    additional_charges: Decimal
    discounts: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    status: BookingStatus
    model_config = ConfigDict(from_attributes=True)


class LedgerResult(BaseModel):
    """Result of a ledger mutation"""
    booking_id: int
    booking_code: str
    status: BookingStatus
    total_amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    line_id: Optional[int] = None
    line_amount: Optional[Decimal] = None


# ============== Cash register ==============

class ShiftOpen(BaseModel):
    initial_cash: Decimal = Field(..., ge=0)


class ShiftClose(BaseModel):
    actual_cash: Decimal = Field(..., ge=0)
    notes: Optional[str] = None


class ShiftReview(BaseModel):
    action: Literal["approve", "reject"]
    notes: Optional[str] = None


class ShiftResponse(BaseModel):
    id: int
    cashier_id: int
    opening_time: datetime
    initial_cash: Decimal
    closing_time: Optional[datetime] = None
    actual_cash: Optional[Decimal] = None
    expected_cash: Optional[Decimal] = None
    variance: Optional[Decimal] = None
    total_cash_payments: Optional[Decimal] = None
    total_card_payments: Optional[Decimal] = None
    total_transfer_payments: Optional[Decimal] = None
    total_check_payments: Optional[Decimal] = None
    total_other_payments: Optional[Decimal] = None
    notes: Optional[str] = None
    status: ShiftStatus
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
