"""
StockLedger - Sales Service

Sale and return handling. The product status change is the primary
effect and is committed first; the ledger entry follows as bookkeeping.
A bookkeeping failure is logged and reported but never undoes the sale.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.models.catalog import Product, ProductStatus
from app.models.inventory import MovementType, StockMovement
from app.schemas.inventory import MovementCreate
from app.schemas.transfer import ReturnCreate, SaleCreate
from app.services.catalog_service import CatalogService
from app.services.movement_service import MovementService
from app.services.transfer_service import TransferService
from app.tenancy import TenantContext
from app.utils.error_handling import (
    InvalidOperationException,
    ItemReservedException,
    ValidationException,
)

logger = logging.getLogger(__name__)


@dataclass
class SaleOutcome:
    product: Product
    movement: Optional[StockMovement] = None
    bookkeeping_error: Optional[Dict[str, Any]] = None

    @property
    def bookkeeping_recorded(self) -> bool:
        return self.movement is not None


class SalesService:
    """Marks items sold or returned and books the matching movement."""

    def __init__(self, tenant: TenantContext):
        self.tenant = tenant
        self.db = tenant.db
        self.catalog = CatalogService(tenant)
        self.movements = MovementService(tenant)

    async def _resolve(self, product_id: Optional[uuid.UUID], tag_code: Optional[str]) -> Product:
        if product_id is not None:
            product = await self.catalog.require_product(product_id)
            if tag_code and (await self.catalog.resolve_tag(tag_code)).id != product.id:
                raise ValidationException(f"Tag '{tag_code}' is not assigned to this product", field="tag_code")
            return product
        if tag_code:
            return await self.catalog.resolve_tag(tag_code)
        raise ValidationException("Either product_id or tag_code is required", field="product_id")

    async def _book(self, product: Product, payload: MovementCreate) -> SaleOutcome:
        outcome = await self.movements.record_followup_movement(payload)
        if not outcome.succeeded:
            # Reload the committed product state after the follow-up rollback
            await self.db.refresh(product)
        return SaleOutcome(product=product, movement=outcome.movement, bookkeeping_error=outcome.error)

    async def complete_sale(self, payload: SaleCreate) -> SaleOutcome:
        """Mark an active item sold, then record the Sale movement."""
        product = await self._resolve(payload.product_id, payload.tag_code)
        if product.status != ProductStatus.ACTIVE:
            raise InvalidOperationException(
                f"Item '{product.item_code}' is {product.status.value} and cannot be sold"
            )
        held_by = await TransferService(self.tenant).open_transfer_for(product.id)
        if held_by:
            raise ItemReservedException(product.item_code, held_by)

        tag_code = payload.tag_code or await self.catalog.get_active_tag(product.id)
        product.status = ProductStatus.SOLD
        await self.db.commit()
        logger.info(f"Item {product.item_code} sold on invoice {payload.invoice_number}")

        return await self._book(product, MovementCreate(
            product_id=product.id,
            tag_code=tag_code,
            movement_type=MovementType.SALE.value,
            quantity=1,
            unit_price=payload.sale_price,
            reference_number=payload.invoice_number,
            reference_type="Invoice",
            remarks=payload.remarks,
        ))

    async def process_return(self, payload: ReturnCreate) -> SaleOutcome:
        """Take a sold item back into stock, then record the Return movement."""
        product = await self._resolve(payload.product_id, payload.tag_code)
        if product.status != ProductStatus.SOLD:
            raise InvalidOperationException(
                f"Item '{product.item_code}' is {product.status.value} and cannot be returned"
            )

        tag_code = payload.tag_code or await self.catalog.get_active_tag(product.id)
        product.status = ProductStatus.ACTIVE
        await self.db.commit()
        logger.info(f"Item {product.item_code} returned against {payload.reference_number}")

        return await self._book(product, MovementCreate(
            product_id=product.id,
            tag_code=tag_code,
            movement_type=MovementType.RETURN.value,
            quantity=1,
            unit_price=payload.refund_amount,
            reference_number=payload.reference_number,
            reference_type="Return",
            remarks=payload.remarks,
        ))
