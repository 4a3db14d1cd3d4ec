"""
StockLedger - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.inventory import (
    # Movements
    MovementCreate,
    BulkMovementCreate,
    MovementResponse,
    MovementListResponse,
    BulkEntryError,
    BulkMovementResponse,
    MovementTypeTotal,
    MovementSummaryResponse,
    # Daily balances
    DailyBalanceResponse,
    DailyBalanceListResponse,
    BalanceCalculateRequest,
    BalanceRangeRequest,
    BalanceFailure,
    BalanceRunResponse,
    # Stock levels
    StockLevelResponse,
)
from app.schemas.transfer import (
    # Transfers
    TransferItemCreate,
    TransferCreate,
    BulkTransferCreate,
    TransferApprove,
    TransferReject,
    TransferCancel,
    TransferItemResponse,
    TransferResponse,
    TransferListResponse,
    BulkTransferError,
    BulkTransferResponse,
    BranchTransferStats,
    TransferSummaryResponse,
    TransferValidationResponse,
    # Sales
    SaleCreate,
    ReturnCreate,
    SaleOutcomeResponse,
)

__all__ = [
    "MovementCreate",
    "BulkMovementCreate",
    "MovementResponse",
    "MovementListResponse",
    "BulkEntryError",
    "BulkMovementResponse",
    "MovementTypeTotal",
    "MovementSummaryResponse",
    "DailyBalanceResponse",
    "DailyBalanceListResponse",
    "BalanceCalculateRequest",
    "BalanceRangeRequest",
    "BalanceFailure",
    "BalanceRunResponse",
    "StockLevelResponse",
    "TransferItemCreate",
    "TransferCreate",
    "BulkTransferCreate",
    "TransferApprove",
    "TransferReject",
    "TransferCancel",
    "TransferItemResponse",
    "TransferResponse",
    "TransferListResponse",
    "BulkTransferError",
    "BulkTransferResponse",
    "BranchTransferStats",
    "TransferSummaryResponse",
    "TransferValidationResponse",
    "SaleCreate",
    "ReturnCreate",
    "SaleOutcomeResponse",
]
