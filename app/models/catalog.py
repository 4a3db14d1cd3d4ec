"""
StockLedger - Catalog Models

Locations (branches, counters, boxes), categories, products and
RFID tag assignments.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel


class ProductStatus(str, Enum):
    """Lifecycle status of a product."""
    ACTIVE = "Active"
    SOLD = "Sold"
    INACTIVE = "Inactive"


class Branch(BaseModel):
    """A store branch."""

    __tablename__ = "branches"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    counters: Mapped[List["Counter"]] = relationship(
        "Counter",
        back_populates="branch",
    )


class Counter(BaseModel):
    """A sales counter inside a branch."""

    __tablename__ = "counters"

    branch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    branch: Mapped["Branch"] = relationship("Branch", back_populates="counters")


class Box(BaseModel):
    """A storage box (display case, velvet box, safe tray)."""

    __tablename__ = "boxes"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    box_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Category(BaseModel):
    """Product category (Ring, Necklace, Bangle...)."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class Product(BaseModel):
    """
    An inventory item.

    The branch/counter/box columns hold the item's current location.
    MRP is the current unit price used when a movement carries no price.
    """

    __tablename__ = "products"

    item_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("categories.id"),
        nullable=False,
        index=True,
    )
    branch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("branches.id"),
        nullable=False,
        index=True,
    )
    counter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("counters.id"),
        nullable=False,
        index=True,
    )
    box_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("boxes.id"),
        nullable=True,
    )

    mrp: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0"),
        nullable=False,
    )
    status: Mapped[ProductStatus] = mapped_column(
        SQLEnum(ProductStatus),
        default=ProductStatus.ACTIVE,
        nullable=False,
    )

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, item_code={self.item_code})>"


class TagAssignment(BaseModel):
    """
    RFID tag to product assignment.

    A tag code has at most one active assignment at a time. Unassigned
    rows are kept as history.
    """

    __tablename__ = "tag_assignments"

    tag_code: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    unassigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_tag_assignments_tag_code_is_active", "tag_code", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<TagAssignment(tag_code={self.tag_code}, product_id={self.product_id})>"
