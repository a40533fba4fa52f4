"""BillSplit - Split receipts between friends and settle up with the fewest transfers."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .ledger import aggregate_balances, net_balances
from .models import (
    Bill,
    BillItem,
    ItemAssignment,
    LedgerEntry,
    Transfer,
)
from .money import Money, to_kobo
from .resolver import resolve_bill, resolve_item
from .service import LedgerService
from .settlement import suggest_settlements

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "aggregate_balances",
    "net_balances",
    "Bill",
    "BillItem",
    "ItemAssignment",
    "LedgerEntry",
    "Transfer",
    "Money",
    "to_kobo",
    "resolve_bill",
    "resolve_item",
    "LedgerService",
    "suggest_settlements",
]
