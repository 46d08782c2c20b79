from .catalog import User, ProductCategory, Product, product_categories
from .inventory import PurchaseLot
from .sales import Sale, SaleLine, Payment
from .registers import CashRegister, CashCut
from .accounts import Account, AccountTransaction, Withdrawal
from .audit import AuditEvent

__all__ = [
    'User', 'ProductCategory', 'Product', 'product_categories',
    'PurchaseLot',
    'Sale', 'SaleLine', 'Payment',
    'CashRegister', 'CashCut',
    'Account', 'AccountTransaction', 'Withdrawal',
    'AuditEvent',
]
