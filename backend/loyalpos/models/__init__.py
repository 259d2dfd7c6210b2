from .tenancy import Business
from .inventory import Product, StockMovement
from .sales import Sale, SaleLine, SaleSequence
from .customers import Customer, PointsTransaction

__all__ = [
    'Business',
    'Product', 'StockMovement',
    'Sale', 'SaleLine', 'SaleSequence',
    'Customer', 'PointsTransaction',
]
