from .tenancy import Business, Branch
from .users import User
from .catalog import Category, Brand, Product, ProductStock
from .registers import CashRegister
from .customers import BranchClient
from .sales import Sale, SaleLine, PaymentMethod, PaymentSplit, TicketSequence
from .aggregates import CategoryAggregate

__all__ = [
    'Business', 'Branch',
    'User',
    'Category', 'Brand', 'Product', 'ProductStock',
    'CashRegister',
    'BranchClient',
    'Sale', 'SaleLine', 'PaymentMethod', 'PaymentSplit', 'TicketSequence',
    'CategoryAggregate',
]
