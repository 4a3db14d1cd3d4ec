"""
StockLedger - Services Package

Business logic services. Each takes a TenantContext.
"""

from app.services.catalog_service import CatalogService
from app.services.movement_service import MovementService
from app.services.balance_service import BalanceService
from app.services.stock_service import StockService
from app.services.transfer_service import TransferService
from app.services.sales_service import SalesService

__all__ = [
    "CatalogService",
    "MovementService",
    "BalanceService",
    "StockService",
    "TransferService",
    "SalesService",
]
