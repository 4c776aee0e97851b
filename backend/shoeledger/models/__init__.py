from .catalog import Shoe
from .inventory import StockEntry, StockMovement
from .sales import ExchangeRate, Sale
from .suppliers import Supplier, Purchase, SupplierPayment
from .expenses import Expense
from .ledger import LedgerEvent

__all__ = [
    'Shoe',
    'StockEntry', 'StockMovement',
    'ExchangeRate', 'Sale',
    'Supplier', 'Purchase', 'SupplierPayment',
    'Expense',
    'LedgerEvent',
]
