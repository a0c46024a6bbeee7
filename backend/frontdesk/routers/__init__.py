# API Routers
from frontdesk.routers import admin, auth, cashier

__all__ = ['admin', 'auth', 'cashier']
