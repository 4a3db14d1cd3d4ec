"""
StockLedger - Inventory Models

Movement ledger and daily balance snapshots.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid, event, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import AppendOnlyModel, BaseModel


class MovementType(str, Enum):
    """Type of stock movement."""
    ADDITION = "Addition"         # New stock added to the catalog
    SALE = "Sale"                 # Item sold
    RETURN = "Return"             # Customer return
    TRANSFER_IN = "TransferIn"    # Arrived at a location
    TRANSFER_OUT = "TransferOut"  # Left a location
    ADJUSTMENT = "Adjustment"     # Audit note, no balance effect

    @property
    def balance_sign(self) -> int:
        """Effect on balance: +1 increases, -1 decreases, 0 neutral."""
        return _BALANCE_SIGNS[self]


_BALANCE_SIGNS = {
    MovementType.ADDITION: 1,
    MovementType.RETURN: 1,
    MovementType.TRANSFER_IN: 1,
    MovementType.SALE: -1,
    MovementType.TRANSFER_OUT: -1,
    MovementType.ADJUSTMENT: 0,
}


class LedgerImmutableError(Exception):
    """Raised when code tries to change a persisted ledger entry."""


class StockMovement(AppendOnlyModel):
    """
    Immutable ledger entry for one inventory-affecting event.
    """

    __tablename__ = "stock_movements"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id"),
        nullable=False,
    )
    tag_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    movement_type: Mapped[MovementType] = mapped_column(
        SQLEnum(MovementType),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    # Location and category at the time of the event
    branch_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    counter_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    box_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    category_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # Reference (invoice number, transfer number...)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    transfer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("stock_transfers.id"),
        nullable=True,
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    movement_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_stock_movements_product_id_movement_date", "product_id", "movement_date"),
        Index("ix_stock_movements_branch_id", "branch_id"),
        Index("ix_stock_movements_counter_id", "counter_id"),
        Index("ix_stock_movements_category_id", "category_id"),
        Index("ix_stock_movements_transfer_id", "transfer_id"),
    )

    @property
    def signed_quantity(self) -> int:
        return self.quantity * self.movement_type.balance_sign

    @property
    def signed_amount(self) -> Decimal:
        return self.total_amount * self.movement_type.balance_sign

    def __repr__(self) -> str:
        return f"<StockMovement(id={self.id}, type={self.movement_type}, qty={self.quantity})>"


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise LedgerImmutableError(f"Stock movement {target.id} cannot be modified")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Stock movement {target.id} cannot be deleted")


class DailyStockBalance(BaseModel):
    """
    Per-product, per-day balance snapshot derived from the ledger.

    closing = opening + added + returned + transferred_in - sold - transferred_out
    holds for quantity and value independently. Rows are overwritten by
    recalculation, never edited by hand.
    """

    __tablename__ = "daily_stock_balances"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id"),
        nullable=False,
    )
    balance_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Reporting dimensions captured at calculation time
    branch_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    counter_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    category_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    tag_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    opening_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    opening_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)

    added_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    added_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    sold_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sold_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    returned_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    returned_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    transferred_in_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    transferred_in_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    transferred_out_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    transferred_out_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)

    closing_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    closing_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)

    movement_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("product_id", "balance_date", name="uq_daily_stock_balances_product_id_balance_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<DailyStockBalance(product_id={self.product_id}, date={self.balance_date}, "
            f"closing={self.closing_quantity})>"
        )
