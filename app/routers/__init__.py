"""
StockLedger - Routers Package

FastAPI route handlers.

Routers:
- inventory: Movements, daily balances, stock levels, sales and returns
- transfers: Stock transfer lifecycle
"""

from app.routers import (
    inventory,
    transfers,
)

__all__ = [
    "inventory",
    "transfers",
]
