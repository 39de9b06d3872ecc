from .stores import Store
from .purchasing import PurchaseSession, StorePurchase, Item
from .ledger import LedgerEvent

__all__ = [
    'Store',
    'PurchaseSession', 'StorePurchase', 'Item',
    'LedgerEvent',
]
