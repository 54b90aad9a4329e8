"""
Database models package.

Importing this package registers every mapped class on ``Base.metadata``.
"""

from kitpack.database.models.catalog import Component, KitEntry, Product
from kitpack.database.models.ledger import StockAdjustment, UsageLedgerEntry
from kitpack.database.models.order import Order, OrderLineItem

__all__ = [
    "Component",
    "KitEntry",
    "Order",
    "OrderLineItem",
    "Product",
    "StockAdjustment",
    "UsageLedgerEntry",
]
