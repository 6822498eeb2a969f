from .catalog import Product, BASE_UNIT
from .people import User, Seller, ROLE_MANAGER, ROLE_SALESPERSON, ROLE_CASHIER, VALID_ROLES
from .sales import (
    Sale,
    SALE_STATUS_BUDGET,
    SALE_STATUS_PENDING,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_CANCELLED,
    VALID_SALE_STATUSES,
    EDITABLE_SALE_STATUSES,
)

__all__ = [
    'Product', 'BASE_UNIT',
    'User', 'Seller', 'ROLE_MANAGER', 'ROLE_SALESPERSON', 'ROLE_CASHIER', 'VALID_ROLES',
    'Sale', 'SALE_STATUS_BUDGET', 'SALE_STATUS_PENDING', 'SALE_STATUS_COMPLETED',
    'SALE_STATUS_CANCELLED', 'VALID_SALE_STATUSES', 'EDITABLE_SALE_STATUSES',
]
