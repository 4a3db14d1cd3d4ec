"""
StockLedger - Stock Service Tests

Point-in-time stock from the ledger and from snapshots.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from app.schemas.inventory import MovementCreate
from app.services.balance_service import BalanceService
from app.services.movement_service import MovementService
from app.services.stock_service import StockScope, StockService, StockSource
from app.utils.error_handling import ProductNotFoundException

DAY = date(2026, 3, 10)


async def _history(tenant, product_factory):
    """Three days of activity on one item."""
    item = await product_factory("NECKLACE-N", mrp=Decimal("250.00"), stock=0)
    service = MovementService(tenant)
    entries = [
        ("Addition", 4, DAY - timedelta(days=1)),
        ("Sale", 1, DAY),
        ("Return", 1, DAY),
        ("Sale", 2, DAY + timedelta(days=1)),
    ]
    for kind, quantity, day in entries:
        await service.record_movement(MovementCreate(
            product_id=item.id,
            movement_type=kind,
            quantity=quantity,
            movement_date=datetime.combine(day, datetime.min.time()) + timedelta(hours=12),
        ))
    return item


class TestProductStock:
    """Ledger and snapshot derivations must agree."""

    @pytest.mark.asyncio
    async def test_sources_agree_without_snapshots(self, tenant, product_factory):
        """With no snapshots the snapshot source falls back to the full ledger."""
        item = await _history(tenant, product_factory)
        service = StockService(tenant)

        ledger = await service.get_product_stock(item.id, source=StockSource.LEDGER)
        snapshot = await service.get_product_stock(item.id, source=StockSource.SNAPSHOT)

        assert ledger.quantity == snapshot.quantity == 2
        assert ledger.value == snapshot.value == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_sources_agree_after_snapshots(self, tenant, product_factory):
        """Latest snapshot plus later ledger entries equals the ledger sum."""
        item = await _history(tenant, product_factory)
        await BalanceService(tenant).process_balance_range(DAY - timedelta(days=1), DAY, [item.id])
        service = StockService(tenant)

        for as_of in (None, DAY - timedelta(days=1), DAY, DAY + timedelta(days=1)):
            ledger = await service.get_product_stock(item.id, as_of=as_of, source=StockSource.LEDGER)
            snapshot = await service.get_product_stock(item.id, as_of=as_of, source=StockSource.SNAPSHOT)
            assert ledger.quantity == snapshot.quantity
            assert ledger.value == snapshot.value

    @pytest.mark.asyncio
    async def test_as_of_end_of_day(self, tenant, product_factory):
        """as_of includes the whole named day and nothing after it."""
        item = await _history(tenant, product_factory)
        service = StockService(tenant)

        level = await service.get_product_stock(item.id, as_of=DAY, source="ledger")

        assert level.quantity == 4
        assert level.source == "ledger"
        assert level.as_of == DAY

    @pytest.mark.asyncio
    async def test_unknown_product(self, tenant):
        """Unknown product is NotFound."""
        with pytest.raises(ProductNotFoundException):
            await StockService(tenant).get_product_stock(uuid4())


class TestLocationStock:
    """Branch, counter and category figures."""

    @pytest.mark.asyncio
    async def test_location_and_category_totals(
        self, tenant, product, product_factory, branch_a, branch_b, counter_a1, category,
    ):
        """Location scopes sum the ledger for that location."""
        await product_factory("RING-Z", stock=2)
        service = StockService(tenant)

        branch = await service.get_branch_stock(branch_a.id)
        counter = await service.get_counter_stock(counter_a1.id)
        by_category = await service.get_category_stock(category.id)
        empty = await service.get_branch_stock(branch_b.id)

        assert branch.quantity == counter.quantity == by_category.quantity == 3
        assert branch.value == Decimal("300.00")
        assert branch.source == "ledger"
        assert empty.quantity == 0

    @pytest.mark.asyncio
    async def test_get_stock_level_dispatch(self, tenant, product, counter_a1):
        """Dispatch by scope name."""
        service = StockService(tenant)

        by_product = await service.get_stock_level(StockScope.PRODUCT, product.id)
        by_counter = await service.get_stock_level("counter", counter_a1.id, source=StockSource.SNAPSHOT)

        assert by_product.scope == "product"
        assert by_product.quantity == 1
        assert by_counter.scope == "counter"
        assert by_counter.source == "ledger"

    @pytest.mark.asyncio
    async def test_available_quantity_at_location(self, tenant, product, branch_a, counter_a1, counter_a2):
        """Availability is per branch and counter."""
        service = StockService(tenant)

        assert await service.available_quantity(product.id, branch_a.id, counter_a1.id) == 1
        assert await service.available_quantity(product.id, branch_a.id, counter_a2.id) == 0


class TestProductAtLocation:
    """One product's stock at a branch or counter."""

    @pytest.mark.asyncio
    async def test_quantity_and_value_at_location(
        self, tenant, product, product_factory, branch_a, branch_b, counter_a1, counter_a2,
    ):
        """Only the named product is counted."""
        await product_factory("RING-Z", stock=2)
        service = StockService(tenant)

        at_branch = await service.get_product_branch_stock(product.id, branch_a.id)
        at_counter = await service.get_product_counter_stock(product.id, counter_a1.id)
        elsewhere = await service.get_product_counter_stock(product.id, counter_a2.id)
        other_branch = await service.get_product_branch_stock(product.id, branch_b.id)

        assert at_branch.quantity == at_counter.quantity == 1
        assert at_branch.value == at_counter.value == Decimal("100.00")
        assert at_branch.product_id == product.id
        assert at_branch.scope == "branch"
        assert at_counter.scope_id == counter_a1.id
        assert elsewhere.quantity == other_branch.quantity == 0

    @pytest.mark.asyncio
    async def test_as_of_before_history(self, tenant, product, branch_a):
        level = await StockService(tenant).get_product_branch_stock(
            product.id, branch_a.id, as_of=date(2020, 1, 1),
        )

        assert level.quantity == 0
        assert level.value == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_unknown_product(self, tenant, branch_a):
        with pytest.raises(ProductNotFoundException):
            await StockService(tenant).get_product_branch_stock(uuid4(), branch_a.id)
