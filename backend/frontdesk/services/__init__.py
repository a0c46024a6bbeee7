# Front-desk services
from frontdesk.services.room_registry import RoomRegistry
from frontdesk.services.ledger_service import LedgerService
from frontdesk.services.cash_register_service import CashRegisterService
from frontdesk.services.customer_service import CustomerService
from frontdesk.services.catalog_service import CatalogService
from frontdesk.services.cashier_service import CashierService

__all__ = [
    'RoomRegistry', 'LedgerService', 'CashRegisterService',
    'CustomerService', 'CatalogService', 'CashierService'
]
