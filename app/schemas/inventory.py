"""
StockLedger - Inventory Schemas

Pydantic schemas for the movement ledger, daily balances and stock queries.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict


# ===========================================
# MOVEMENT SCHEMAS
# ===========================================

class MovementCreate(BaseModel):
    """
    Schema for recording a stock movement.

    The product is identified by product_id or by an RFID tag_code.
    Location, category and unit price default to the product's current
    values when omitted.
    """
    product_id: Optional[UUID] = None
    tag_code: Optional[str] = Field(None, max_length=50)
    movement_type: str = Field(..., description="Addition, Sale, Return, TransferIn, TransferOut or Adjustment")
    quantity: int = 1
    unit_price: Optional[Decimal] = Field(None, ge=0)
    total_amount: Optional[Decimal] = Field(None, ge=0)
    branch_id: Optional[UUID] = None
    counter_id: Optional[UUID] = None
    box_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    reference_number: Optional[str] = Field(None, max_length=100)
    reference_type: Optional[str] = Field(None, max_length=50)
    transfer_id: Optional[UUID] = None
    remarks: Optional[str] = None
    movement_date: Optional[datetime] = None

    @property
    def product_ref(self) -> str:
        return str(self.product_id or self.tag_code or "unknown")


class BulkMovementCreate(BaseModel):
    """Schema for recording several movements in one call."""
    movements: List[MovementCreate] = Field(..., min_length=1)


class MovementResponse(BaseModel):
    """Response schema for a ledger entry."""
    id: UUID
    product_id: UUID
    tag_code: Optional[str]
    movement_type: str
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    branch_id: UUID
    counter_id: UUID
    box_id: Optional[UUID]
    category_id: UUID
    reference_number: Optional[str]
    reference_type: Optional[str]
    transfer_id: Optional[UUID]
    remarks: Optional[str]
    movement_date: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MovementListResponse(BaseModel):
    """Paginated ledger entries."""
    items: List[MovementResponse]
    total: int
    page: int
    page_size: int


class BulkEntryError(BaseModel):
    """One failed entry of a bulk request."""
    index: int
    reference: str
    code: str
    message: str

    model_config = ConfigDict(from_attributes=True)


class BulkMovementResponse(BaseModel):
    """Outcome of a bulk movement request."""
    total_requested: int
    recorded_count: int
    failed_count: int
    recorded: List[MovementResponse]
    errors: List[BulkEntryError]

    model_config = ConfigDict(from_attributes=True)


class MovementTypeTotal(BaseModel):
    """Totals for one movement type."""
    movement_type: str
    movement_count: int
    quantity: int
    value: Decimal

    model_config = ConfigDict(from_attributes=True)


class MovementSummaryResponse(BaseModel):
    """Movement totals per type for a date range."""
    start_date: date
    end_date: date
    branch_id: Optional[UUID]
    counter_id: Optional[UUID]
    totals: List[MovementTypeTotal]
    net_quantity: int
    net_value: Decimal

    model_config = ConfigDict(from_attributes=True)


# ===========================================
# DAILY BALANCE SCHEMAS
# ===========================================

class DailyBalanceResponse(BaseModel):
    """Response schema for a daily balance snapshot."""
    id: UUID
    product_id: UUID
    balance_date: date
    branch_id: UUID
    counter_id: UUID
    category_id: UUID
    tag_code: Optional[str]
    opening_quantity: int
    opening_value: Decimal
    added_quantity: int
    added_value: Decimal
    sold_quantity: int
    sold_value: Decimal
    returned_quantity: int
    returned_value: Decimal
    transferred_in_quantity: int
    transferred_in_value: Decimal
    transferred_out_quantity: int
    transferred_out_value: Decimal
    closing_quantity: int
    closing_value: Decimal
    movement_count: int
    calculated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DailyBalanceListResponse(BaseModel):
    """Paginated balance snapshots."""
    items: List[DailyBalanceResponse]
    total: int
    page: int
    page_size: int


class BalanceCalculateRequest(BaseModel):
    """Calculate every product's balance for one day."""
    balance_date: date


class BalanceRangeRequest(BaseModel):
    """Process or recalculate balances over a date range."""
    start_date: date
    end_date: date
    product_ids: Optional[List[UUID]] = None


class BalanceFailure(BaseModel):
    """A product/day that could not be calculated."""
    product_id: UUID
    balance_date: date
    code: str
    message: str

    model_config = ConfigDict(from_attributes=True)


class BalanceRunResponse(BaseModel):
    """Outcome of a multi-day balance run."""
    start_date: date
    end_date: date
    days_completed: int
    snapshots_written: int
    failures: List[BalanceFailure]
    resume_from: Optional[date]
    completed: bool

    model_config = ConfigDict(from_attributes=True)


# ===========================================
# STOCK LEVEL SCHEMAS
# ===========================================

class StockLevelResponse(BaseModel):
    """Quantity and value on hand for a scope."""
    scope: str
    scope_id: UUID
    quantity: int
    value: Decimal
    as_of: Optional[date]
    source: str
    product_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)
