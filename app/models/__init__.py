"""
StockLedger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, AppendOnlyModel
from app.models.catalog import (
    Branch,
    Counter,
    Box,
    Category,
    Product,
    ProductStatus,
    TagAssignment,
)
from app.models.inventory import (
    MovementType,
    StockMovement,
    DailyStockBalance,
    LedgerImmutableError,
)
from app.models.transfer import (
    TransferType,
    TransferStatus,
    StockTransfer,
    StockTransferItem,
    StockReservation,
    OPEN_TRANSFER_STATUSES,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "AppendOnlyModel",
    # Catalog
    "Branch",
    "Counter",
    "Box",
    "Category",
    "Product",
    "ProductStatus",
    "TagAssignment",
    # Inventory
    "MovementType",
    "StockMovement",
    "DailyStockBalance",
    "LedgerImmutableError",
    # Transfers
    "TransferType",
    "TransferStatus",
    "StockTransfer",
    "StockTransferItem",
    "StockReservation",
    "OPEN_TRANSFER_STATUSES",
]
