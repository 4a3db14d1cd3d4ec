"""
StockLedger - Sales Service Tests

Sale and return handling with best-effort ledger bookkeeping.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.models.catalog import ProductStatus
from app.models.inventory import MovementType
from app.schemas.transfer import ReturnCreate, SaleCreate, TransferCreate, TransferItemCreate
from app.services.movement_service import MovementFilter, MovementService
from app.services.sales_service import SalesService
from app.services.transfer_service import TransferService
from app.utils.error_handling import InvalidOperationException, ItemReservedException


async def _movements(tenant, product_id, movement_type):
    rows, _ = await MovementService(tenant).get_movements(
        MovementFilter(product_id=product_id, movement_type=movement_type)
    )
    return rows


class TestCompleteSale:
    """Test cases for selling an item."""

    @pytest.mark.asyncio
    async def test_sale_by_tag(self, tenant, product):
        """A sale marks the item sold and books a Sale against the invoice."""
        outcome = await SalesService(tenant).complete_sale(SaleCreate(
            tag_code="TAG-X",
            invoice_number="INV-2026-0042",
            sale_price=Decimal("95.00"),
        ))

        assert outcome.product.status == ProductStatus.SOLD
        assert outcome.bookkeeping_recorded
        assert outcome.bookkeeping_error is None
        movement = outcome.movement
        assert movement.movement_type == MovementType.SALE
        assert movement.reference_number == "INV-2026-0042"
        assert movement.reference_type == "Invoice"
        assert movement.unit_price == Decimal("95.00")
        assert movement.tag_code == "TAG-X"

    @pytest.mark.asyncio
    async def test_sale_defaults_to_mrp(self, tenant, product):
        outcome = await SalesService(tenant).complete_sale(SaleCreate(
            product_id=product.id,
            invoice_number="INV-1",
        ))

        assert outcome.movement.total_amount == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_sold_item_cannot_be_sold_again(self, tenant, product):
        service = SalesService(tenant)
        await service.complete_sale(SaleCreate(product_id=product.id, invoice_number="INV-1"))

        with pytest.raises(InvalidOperationException):
            await service.complete_sale(SaleCreate(product_id=product.id, invoice_number="INV-2"))

    @pytest.mark.asyncio
    async def test_item_in_open_transfer_cannot_be_sold(self, tenant, product, branch_b, counter_b1):
        """Reserved items are held for their transfer."""
        await TransferService(tenant).create_transfer(TransferCreate(
            items=[TransferItemCreate(product_id=product.id)],
            destination_branch_id=branch_b.id,
            destination_counter_id=counter_b1.id,
        ))

        with pytest.raises(ItemReservedException):
            await SalesService(tenant).complete_sale(SaleCreate(product_id=product.id, invoice_number="INV-1"))

        assert product.status == ProductStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_bookkeeping_failure_keeps_the_sale(self, tenant, product, monkeypatch):
        """A failed Sale entry is reported; the item stays sold."""
        product_id = product.id

        async def broken_stage(self, payload, product=None):
            raise OperationalError("INSERT INTO stock_movements", {}, Exception("disk I/O error"))

        monkeypatch.setattr(MovementService, "stage_movement", broken_stage)

        outcome = await SalesService(tenant).complete_sale(SaleCreate(
            product_id=product_id,
            invoice_number="INV-9",
        ))

        assert not outcome.bookkeeping_recorded
        assert outcome.bookkeeping_error["code"] == "INTERNAL_ERROR"
        assert outcome.product.status == ProductStatus.SOLD

        monkeypatch.undo()
        assert await _movements(tenant, product_id, MovementType.SALE) == []


class TestProcessReturn:
    """Test cases for returns."""

    @pytest.mark.asyncio
    async def test_return_restocks_item(self, tenant, product):
        """A return reactivates the item and books a Return."""
        service = SalesService(tenant)
        await service.complete_sale(SaleCreate(product_id=product.id, invoice_number="INV-1"))

        outcome = await service.process_return(ReturnCreate(
            tag_code="TAG-X",
            reference_number="RMA-7",
            refund_amount=Decimal("90.00"),
        ))

        assert outcome.product.status == ProductStatus.ACTIVE
        assert outcome.movement.movement_type == MovementType.RETURN
        assert outcome.movement.reference_type == "Return"
        assert outcome.movement.total_amount == Decimal("90.00")
        assert len(await _movements(tenant, product.id, MovementType.RETURN)) == 1

    @pytest.mark.asyncio
    async def test_active_item_cannot_be_returned(self, tenant, product):
        with pytest.raises(InvalidOperationException):
            await SalesService(tenant).process_return(ReturnCreate(
                product_id=product.id,
                reference_number="RMA-1",
            ))
