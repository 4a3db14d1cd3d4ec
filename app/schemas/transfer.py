"""
StockLedger - Stock Transfer Schemas

Pydantic schemas for stock transfers and sales bookkeeping.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict


# ===========================================
# TRANSFER REQUEST SCHEMAS
# ===========================================

class TransferItemCreate(BaseModel):
    """An item to move, by product id or RFID tag."""
    product_id: Optional[UUID] = None
    tag_code: Optional[str] = Field(None, max_length=50)
    quantity: int = 1

    @property
    def product_ref(self) -> str:
        return str(self.product_id or self.tag_code or "unknown")


class TransferCreate(BaseModel):
    """
    Schema for requesting a transfer.

    Source location defaults to the first item's current location.
    """
    items: List[TransferItemCreate]
    source_branch_id: Optional[UUID] = None
    source_counter_id: Optional[UUID] = None
    source_box_id: Optional[UUID] = None
    destination_branch_id: UUID
    destination_counter_id: UUID
    destination_box_id: Optional[UUID] = None
    reason: Optional[str] = Field(None, max_length=255)
    remarks: Optional[str] = None
    transfer_date: Optional[datetime] = None


class BulkTransferCreate(BaseModel):
    """Several transfers in one call, with optional shared reason/remarks."""
    transfers: List[TransferCreate] = Field(..., min_length=1)
    common_reason: Optional[str] = Field(None, max_length=255)
    common_remarks: Optional[str] = None


class TransferApprove(BaseModel):
    remarks: Optional[str] = None


class TransferReject(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class TransferCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


# ===========================================
# TRANSFER RESPONSE SCHEMAS
# ===========================================

class TransferItemResponse(BaseModel):
    id: UUID
    product_id: UUID
    tag_code: Optional[str]
    quantity: int
    unit_price: Decimal
    total_value: Decimal

    model_config = ConfigDict(from_attributes=True)


class TransferResponse(BaseModel):
    """Response schema for a stock transfer."""
    id: UUID
    transfer_number: str
    transfer_type: str
    status: str
    source_branch_id: UUID
    source_counter_id: UUID
    source_box_id: Optional[UUID]
    destination_branch_id: UUID
    destination_counter_id: UUID
    destination_box_id: Optional[UUID]
    reason: Optional[str]
    remarks: Optional[str]
    transfer_date: datetime
    requested_by: Optional[str]
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    rejected_by: Optional[str]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    completed_by: Optional[str]
    completed_at: Optional[datetime]
    cancelled_by: Optional[str]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    total_quantity: int
    total_value: Decimal
    items: List[TransferItemResponse]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransferValidationResponse(BaseModel):
    """Dry-run result; code and message describe the first failure."""
    is_valid: bool
    transfer_type: Optional[str] = None
    source_branch_id: Optional[UUID] = None
    source_counter_id: Optional[UUID] = None
    source_box_id: Optional[UUID] = None
    code: Optional[str] = None
    message: Optional[str] = None
    field: Optional[str] = None


class TransferListResponse(BaseModel):
    items: List[TransferResponse]
    total: int
    page: int
    page_size: int


class BulkTransferError(BaseModel):
    index: int
    reference: str
    code: str
    message: str

    model_config = ConfigDict(from_attributes=True)


class BulkTransferResponse(BaseModel):
    total_requested: int
    created_count: int
    failed_count: int
    created: List[TransferResponse]
    errors: List[BulkTransferError]

    model_config = ConfigDict(from_attributes=True)


class BranchTransferStats(BaseModel):
    branch_id: UUID
    incoming_count: int
    outgoing_count: int
    incoming_value: Decimal
    outgoing_value: Decimal

    model_config = ConfigDict(from_attributes=True)


class TransferSummaryResponse(BaseModel):
    total_transfers: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    branches: List[BranchTransferStats]

    model_config = ConfigDict(from_attributes=True)


# ===========================================
# SALES SCHEMAS
# ===========================================

class SaleCreate(BaseModel):
    """Mark an item sold against an invoice."""
    product_id: Optional[UUID] = None
    tag_code: Optional[str] = Field(None, max_length=50)
    invoice_number: str = Field(..., min_length=1, max_length=100)
    sale_price: Optional[Decimal] = Field(None, ge=0)
    remarks: Optional[str] = None


class ReturnCreate(BaseModel):
    """Take a sold item back into stock."""
    product_id: Optional[UUID] = None
    tag_code: Optional[str] = Field(None, max_length=50)
    reference_number: str = Field(..., min_length=1, max_length=100)
    refund_amount: Optional[Decimal] = Field(None, ge=0)
    remarks: Optional[str] = None


class SaleOutcomeResponse(BaseModel):
    """Primary change plus the result of the ledger bookkeeping."""
    product_id: UUID
    product_status: str
    movement_id: Optional[UUID]
    bookkeeping_recorded: bool
    bookkeeping_error: Optional[Dict[str, str]]
