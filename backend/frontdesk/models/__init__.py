# Domain models
from frontdesk.models.ontology import (
    Operator, User, CashierPermission, Room, Product, Customer, Booking,
    BookingCharge, BookingDiscount, Payment, PaymentSplit, Refund, CashRegisterShift
)

__all__ = [
    'Operator', 'User', 'CashierPermission', 'Room', 'Product', 'Customer', 'Booking',
    'BookingCharge', 'BookingDiscount', 'Payment', 'PaymentSplit', 'Refund',
    'CashRegisterShift'
]
