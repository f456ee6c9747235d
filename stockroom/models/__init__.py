from stockroom.models.inventory import (
    InventoryItem,
    InventoryTransaction,
    Product,
    Room,
    Store,
    Supplier,
    TransactionType,
)

__all__ = [
    "InventoryItem",
    "InventoryTransaction",
    "Product",
    "Room",
    "Store",
    "Supplier",
    "TransactionType",
]
