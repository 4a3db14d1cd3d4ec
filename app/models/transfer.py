"""
StockLedger - Stock Transfer Models

Transfers of items between branches, counters and boxes.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel


class TransferType(str, Enum):
    """Which part of the location a transfer changes."""
    BRANCH = "Branch"
    COUNTER = "Counter"
    BOX = "Box"
    MIXED = "Mixed"


class TransferStatus(str, Enum):
    """Transfer lifecycle status."""
    PENDING = "Pending"
    IN_TRANSIT = "InTransit"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"

    @property
    def allowed_transitions(self) -> FrozenSet["TransferStatus"]:
        return _VALID_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not _VALID_TRANSITIONS[self]

    @property
    def is_open(self) -> bool:
        return not self.is_terminal

    def can_transition_to(self, target: "TransferStatus") -> bool:
        return target in _VALID_TRANSITIONS[self]


_VALID_TRANSITIONS = {
    TransferStatus.PENDING: frozenset({
        TransferStatus.IN_TRANSIT,
        TransferStatus.REJECTED,
        TransferStatus.CANCELLED,
    }),
    TransferStatus.IN_TRANSIT: frozenset({
        TransferStatus.COMPLETED,
        TransferStatus.CANCELLED,
    }),
    TransferStatus.COMPLETED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
    TransferStatus.REJECTED: frozenset(),
}

OPEN_TRANSFER_STATUSES = [s for s in TransferStatus if s.is_open]


class StockTransfer(BaseModel):
    """
    A request to relocate one or more items.

    Stock only moves when the transfer is completed.
    """

    __tablename__ = "stock_transfers"

    transfer_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    transfer_type: Mapped[TransferType] = mapped_column(SQLEnum(TransferType), nullable=False)
    status: Mapped[TransferStatus] = mapped_column(
        SQLEnum(TransferStatus),
        default=TransferStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Source location
    source_branch_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("branches.id"), nullable=False)
    source_counter_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("counters.id"), nullable=False)
    source_box_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("boxes.id"), nullable=True)

    # Destination location
    destination_branch_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("branches.id"), nullable=False)
    destination_counter_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("counters.id"), nullable=False)
    destination_box_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("boxes.id"), nullable=True)

    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transfer_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # Workflow
    requested_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    completed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    items: Mapped[List["StockTransferItem"]] = relationship(
        "StockTransferItem",
        back_populates="transfer",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="StockTransferItem.created_at",
    )

    __table_args__ = (
        Index("ix_stock_transfers_source", "source_branch_id", "source_counter_id"),
        Index("ix_stock_transfers_destination", "destination_branch_id", "destination_counter_id"),
        Index("ix_stock_transfers_transfer_date", "transfer_date"),
    )

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_value(self) -> Decimal:
        return sum((item.total_value for item in self.items), Decimal("0"))

    def __repr__(self) -> str:
        return f"<StockTransfer(number={self.transfer_number}, status={self.status})>"


class StockTransferItem(BaseModel):
    """An item carried by a transfer, with the value captured at creation."""

    __tablename__ = "stock_transfer_items"

    transfer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stock_transfers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id"),
        nullable=False,
        index=True,
    )
    tag_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    transfer: Mapped["StockTransfer"] = relationship("StockTransfer", back_populates="items")

    @property
    def total_value(self) -> Decimal:
        return self.unit_price * self.quantity


class StockReservation(BaseModel):
    """
    Holds an item for an open transfer.

    Unique per product, so an item can be part of one open transfer only.
    Deleted when the transfer reaches a terminal status.
    """

    __tablename__ = "stock_reservations"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id"),
        nullable=False,
        unique=True,
    )
    transfer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stock_transfers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
