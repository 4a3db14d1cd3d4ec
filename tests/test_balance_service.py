"""
StockLedger - Balance Service Tests

Daily balance reconciliation: closing formula, idempotence, day chaining
and repair after out-of-order history.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from app.models.catalog import ProductStatus
from app.schemas.inventory import MovementCreate
from app.services.balance_service import BalanceFilter, BalanceService, iter_days
from app.services.movement_service import MovementService
from app.utils.error_handling import (
    InvalidDateRangeException,
    ProductNotFoundException,
    ValidationException,
)

DAY = date(2026, 3, 10)


def _at(day: date, hour: int) -> datetime:
    return datetime.combine(day, datetime.min.time()) + timedelta(hours=hour)


def _figures(snapshot):
    return (
        snapshot.opening_quantity, snapshot.opening_value,
        snapshot.added_quantity, snapshot.added_value,
        snapshot.sold_quantity, snapshot.sold_value,
        snapshot.returned_quantity, snapshot.returned_value,
        snapshot.transferred_in_quantity, snapshot.transferred_in_value,
        snapshot.transferred_out_quantity, snapshot.transferred_out_value,
        snapshot.closing_quantity, snapshot.closing_value,
        snapshot.movement_count,
    )


async def _record(tenant, product_id, kind, quantity, price, when):
    await MovementService(tenant).record_movement(MovementCreate(
        product_id=product_id,
        movement_type=kind,
        quantity=quantity,
        unit_price=Decimal(price),
        movement_date=when,
    ))


@pytest.fixture
def worked_example(tenant, product_factory):
    """Opening 10 @ 100 on DAY, then Sale 2 @ 100 and TransferIn 5 @ 90 during DAY."""

    async def build():
        item = await product_factory("PENDANT-P", stock=0)
        await _record(tenant, item.id, "Addition", 10, "100.00", _at(DAY - timedelta(days=1), 10))
        await _record(tenant, item.id, "Sale", 2, "100.00", _at(DAY, 11))
        await _record(tenant, item.id, "TransferIn", 5, "90.00", _at(DAY, 15))
        return item

    return build


class TestIterDays:

    def test_inclusive_range(self):
        """Both ends are included."""
        assert list(iter_days(date(2026, 2, 27), date(2026, 3, 1))) == [
            date(2026, 2, 27), date(2026, 2, 28), date(2026, 3, 1),
        ]


class TestCalculateDailyBalance:
    """Test cases for single product/day snapshots."""

    @pytest.mark.asyncio
    async def test_closing_formula(self, tenant, worked_example):
        """closing = opening + added + returned + transferred_in - sold - transferred_out."""
        item = await worked_example()
        service = BalanceService(tenant)

        snapshot = await service.calculate_daily_balance(item.id, DAY)

        assert snapshot.opening_quantity == 10
        assert snapshot.opening_value == Decimal("1000.00")
        assert snapshot.sold_quantity == 2
        assert snapshot.sold_value == Decimal("200.00")
        assert snapshot.transferred_in_quantity == 5
        assert snapshot.transferred_in_value == Decimal("450.00")
        assert snapshot.closing_quantity == 13
        assert snapshot.closing_value == Decimal("1250.00")
        assert snapshot.movement_count == 2

    @pytest.mark.asyncio
    async def test_recalculation_is_idempotent(self, tenant, worked_example):
        """Recomputing with an unchanged ledger reproduces the same numbers."""
        item = await worked_example()
        service = BalanceService(tenant)

        first = _figures(await service.calculate_daily_balance(item.id, DAY))
        second_snapshot = await service.calculate_daily_balance(item.id, DAY)

        assert _figures(second_snapshot) == first
        rows, total = await service.get_daily_balances(BalanceFilter(product_id=item.id))
        assert total == 1
        assert rows[0].id == second_snapshot.id

    @pytest.mark.asyncio
    async def test_adjustment_is_balance_neutral(self, tenant, product_factory):
        """Adjustments count as activity but leave the balance alone."""
        item = await product_factory("EARRING-A", stock=0)
        await _record(tenant, item.id, "Addition", 2, "50.00", _at(DAY, 9))
        await _record(tenant, item.id, "Adjustment", 1, "50.00", _at(DAY, 10))

        snapshot = await BalanceService(tenant).calculate_daily_balance(item.id, DAY)

        assert snapshot.closing_quantity == 2
        assert snapshot.closing_value == Decimal("100.00")
        assert snapshot.movement_count == 2

    @pytest.mark.asyncio
    async def test_product_without_history_gets_zero_snapshot(self, tenant, product_factory):
        """No movements and no prior snapshot is an all-zero snapshot, not an error."""
        item = await product_factory("BROOCH-0", stock=0)

        snapshot = await BalanceService(tenant).calculate_daily_balance(item.id, DAY)

        assert snapshot.opening_quantity == 0
        assert snapshot.closing_quantity == 0
        assert snapshot.closing_value == Decimal("0.00")
        assert snapshot.movement_count == 0

    @pytest.mark.asyncio
    async def test_unknown_product(self, tenant):
        """Unknown product is NotFound."""
        with pytest.raises(ProductNotFoundException):
            await BalanceService(tenant).calculate_daily_balance(uuid4(), DAY)

    @pytest.mark.asyncio
    async def test_movement_at_midnight_belongs_to_next_day(self, tenant, product_factory):
        """The day window is half-open."""
        item = await product_factory("ANKLET-M", stock=0)
        await _record(tenant, item.id, "Addition", 1, "10.00", _at(DAY + timedelta(days=1), 0))
        service = BalanceService(tenant)

        today = await service.calculate_daily_balance(item.id, DAY)
        tomorrow = await service.calculate_daily_balance(item.id, DAY + timedelta(days=1))

        assert today.closing_quantity == 0
        assert tomorrow.added_quantity == 1


class TestBalanceRanges:
    """Test cases for multi-day calculation and repair."""

    @pytest.mark.asyncio
    async def test_closing_carries_into_next_opening(self, tenant, worked_example):
        """closing(N) == opening(N+1) for every consecutive pair."""
        item = await worked_example()
        await _record(tenant, item.id, "Return", 1, "100.00", _at(DAY + timedelta(days=1), 12))

        snapshots = await BalanceService(tenant).calculate_balance_range(
            item.id, DAY - timedelta(days=2), DAY + timedelta(days=2),
        )

        assert len(snapshots) == 5
        for earlier, later in zip(snapshots, snapshots[1:]):
            assert earlier.closing_quantity == later.opening_quantity
            assert earlier.closing_value == later.opening_value
        assert [s.closing_quantity for s in snapshots] == [0, 10, 13, 14, 14]

    @pytest.mark.asyncio
    async def test_out_of_order_history_is_repaired(self, tenant, worked_example):
        """A backdated entry is picked up by recalculation."""
        item = await worked_example()
        item_id = item.id
        service = BalanceService(tenant)
        start = DAY - timedelta(days=1)
        await service.process_balance_range(start, DAY, [item_id])

        # Backdated addition recorded after the snapshots were taken
        await _record(tenant, item_id, "Addition", 1, "100.00", _at(start, 18))
        stale = await service.get_daily_balance(item_id, DAY)
        assert stale.opening_quantity == 10

        report = await service.recalculate_balances(start, DAY, [item_id])
        repaired = await service.get_daily_balance(item_id, DAY)

        assert report.completed
        assert report.days_completed == 2
        assert repaired.opening_quantity == 11
        assert repaired.closing_quantity == 14
        assert repaired.closing_value == Decimal("1350.00")

    @pytest.mark.asyncio
    async def test_rerun_is_safe(self, tenant, worked_example):
        """Running the same range twice yields identical snapshots."""
        item = await worked_example()
        service = BalanceService(tenant)
        start, end = DAY - timedelta(days=1), DAY + timedelta(days=1)

        await service.process_balance_range(start, end, [item.id])
        first = [_figures(s) for s in (await service.get_daily_balances(BalanceFilter(product_id=item.id)))[0]]
        await service.recalculate_balances(start, end, [item.id])
        second = [_figures(s) for s in (await service.get_daily_balances(BalanceFilter(product_id=item.id)))[0]]

        assert first == second
        assert len(first) == 3

    @pytest.mark.asyncio
    async def test_all_products_for_a_day(self, tenant, product, worked_example, product_factory):
        """Active products and products moved that day are included."""
        item = await worked_example()
        retired = await product_factory("RETIRED-1", stock=0)
        retired.status = ProductStatus.INACTIVE
        await tenant.db.commit()

        report = await BalanceService(tenant).calculate_daily_balances(DAY)

        assert report.days_completed == 1
        assert report.failures == []
        # RING-X and PENDANT-P are active; the inactive item had no activity
        assert report.snapshots_written == 2
        rows, total = await BalanceService(tenant).get_daily_balances(BalanceFilter(start_date=DAY, end_date=DAY))
        assert {r.product_id for r in rows} == {product.id, item.id}

    @pytest.mark.asyncio
    async def test_unknown_ids_are_reported(self, tenant, product):
        """Unknown products in a run are reported per day, the rest still computed."""
        missing = uuid4()

        report = await BalanceService(tenant).process_balance_range(DAY, DAY, [product.id, missing])

        assert report.snapshots_written == 1
        assert len(report.failures) == 1
        assert report.failures[0].product_id == missing
        assert report.failures[0].code == "PRODUCT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_range_validation(self, tenant, product):
        """Reversed ranges and ranges over the cap are rejected."""
        service = BalanceService(tenant)

        with pytest.raises(InvalidDateRangeException):
            await service.process_balance_range(DAY, DAY - timedelta(days=1))
        with pytest.raises(ValidationException):
            await service.recalculate_balances(DAY, DAY + timedelta(days=400))

    @pytest.mark.asyncio
    async def test_get_daily_balance_calculates_on_demand(self, tenant, worked_example):
        """A missing snapshot is derived and stored."""
        item = await worked_example()
        service = BalanceService(tenant)

        snapshot = await service.get_daily_balance(item.id, DAY)
        rows, total = await service.get_daily_balances(BalanceFilter(product_id=item.id))

        assert snapshot.closing_quantity == 13
        assert total == 1
