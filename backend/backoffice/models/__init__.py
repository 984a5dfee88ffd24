from .parties import Customer, Supplier
from .catalog import Category, Product, StockMovement
from .sales import Sale, SaleLine
from .fiscal import FiscalDocument
from .finance import LedgerEntry, Receivable, Payable
from .documents import DocumentSequence

__all__ = [
    'Customer', 'Supplier',
    'Category', 'Product', 'StockMovement',
    'Sale', 'SaleLine',
    'FiscalDocument',
    'LedgerEntry', 'Receivable', 'Payable',
    'DocumentSequence',
]
