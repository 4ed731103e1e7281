from .tenancy import Branch
from .users import User
from .catalog import Product, Customer, PaymentMethod
from .registers import Register, RegisterSession
from .sales import Sale, SaleLine, Payment
from .documents import DocumentSequence, LedgerEvent

__all__ = [
    'Branch',
    'User',
    'Product', 'Customer', 'PaymentMethod',
    'Register', 'RegisterSession',
    'Sale', 'SaleLine', 'Payment',
    'DocumentSequence', 'LedgerEvent',
]
