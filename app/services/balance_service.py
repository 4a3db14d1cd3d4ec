"""
StockLedger - Balance Service

Daily balance reconciliation: replays the movement ledger into one
snapshot per product per day.

    closing = opening + added + returned + transferred_in - sold - transferred_out

Opening is the previous day's closing. Every calculation is a full
re-derivation from the ledger, so re-running it is always safe and is
how out-of-order or corrected history gets repaired.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config import settings
from app.models.catalog import Product, ProductStatus
from app.models.inventory import DailyStockBalance, MovementType, StockMovement
from app.services.catalog_service import CatalogService
from app.services.movement_service import day_bounds, ledger_totals, net_totals, quantize_money
from app.tenancy import TenantContext
from app.utils.error_handling import (
    AppException,
    DatabaseException,
    InvalidDateRangeException,
    ValidationException,
    error_summary,
)
from app.utils.locks import balance_locks

logger = logging.getLogger(__name__)

# Snapshot column prefix for each balance-affecting type
_TYPE_COLUMNS = {
    MovementType.ADDITION: "added",
    MovementType.SALE: "sold",
    MovementType.RETURN: "returned",
    MovementType.TRANSFER_IN: "transferred_in",
    MovementType.TRANSFER_OUT: "transferred_out",
}


@dataclass
class BalanceFailure:
    product_id: uuid.UUID
    balance_date: date
    code: str
    message: str


@dataclass
class BalanceRunReport:
    """Outcome of a multi-day run. resume_from is the first day not committed."""
    start_date: date
    end_date: date
    days_completed: int = 0
    snapshots_written: int = 0
    failures: List[BalanceFailure] = field(default_factory=list)
    resume_from: Optional[date] = None

    @property
    def completed(self) -> bool:
        return self.resume_from is None


@dataclass
class BalanceFilter:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    product_id: Optional[uuid.UUID] = None
    branch_id: Optional[uuid.UUID] = None
    counter_id: Optional[uuid.UUID] = None
    category_id: Optional[uuid.UUID] = None
    page: int = 1
    page_size: int = settings.default_page_size


def iter_days(start: date, end: date):
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


class BalanceService:
    """Calculates, repairs and reads daily balance snapshots."""

    def __init__(self, tenant: TenantContext):
        self.tenant = tenant
        self.db = tenant.db
        self.catalog = CatalogService(tenant)

    def _check_range(self, start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise InvalidDateRangeException(start_date, end_date)
        days = (end_date - start_date).days + 1
        if days > settings.max_balance_range_days:
            raise ValidationException(
                f"Date range covers {days} days. At most {settings.max_balance_range_days} days per run.",
                details={"days": days, "limit": settings.max_balance_range_days},
            )

    # ===========================================
    # CORE CALCULATION
    # ===========================================

    async def _opening(self, product_id: uuid.UUID, day: date) -> Tuple[int, Decimal]:
        """
        Closing balance of the previous day.

        When the previous day has no snapshot, the latest earlier snapshot is
        rolled forward over the ledger up to the start of the day.
        """
        result = await self.db.execute(
            select(DailyStockBalance)
            .where(DailyStockBalance.product_id == product_id)
            .where(DailyStockBalance.balance_date < day)
            .order_by(DailyStockBalance.balance_date.desc())
            .limit(1)
        )
        previous = result.scalar_one_or_none()
        day_start = day_bounds(day)[0]

        if previous and previous.balance_date == day - timedelta(days=1):
            return previous.closing_quantity, quantize_money(previous.closing_value)

        criteria = [
            StockMovement.product_id == product_id,
            StockMovement.movement_date < day_start,
        ]
        base_quantity, base_value = 0, Decimal("0.00")
        if previous:
            base_quantity = previous.closing_quantity
            base_value = quantize_money(previous.closing_value)
            criteria.append(StockMovement.movement_date >= day_bounds(previous.balance_date)[1])

        gap_quantity, gap_value = net_totals(await ledger_totals(self.db, *criteria))
        return base_quantity + gap_quantity, base_value + gap_value

    async def _calculate(self, product: Product, day: date) -> DailyStockBalance:
        """Derive and stage the snapshot for one product/day (flush only)."""
        opening_quantity, opening_value = await self._opening(product.id, day)

        start, end = day_bounds(day)
        totals = await ledger_totals(
            self.db,
            StockMovement.product_id == product.id,
            StockMovement.movement_date >= start,
            StockMovement.movement_date < end,
        )
        day_quantity, day_value = net_totals(totals)

        values = {
            "opening_quantity": opening_quantity,
            "opening_value": opening_value,
            "closing_quantity": opening_quantity + day_quantity,
            "closing_value": quantize_money(opening_value + day_value),
            "movement_count": sum(bucket.movement_count for bucket in totals.values()),
            "branch_id": product.branch_id,
            "counter_id": product.counter_id,
            "category_id": product.category_id,
            "tag_code": await self.catalog.get_active_tag(product.id),
            "calculated_at": datetime.utcnow(),
        }
        for movement_type, prefix in _TYPE_COLUMNS.items():
            values[f"{prefix}_quantity"] = totals[movement_type].quantity
            values[f"{prefix}_value"] = totals[movement_type].value

        result = await self.db.execute(
            select(DailyStockBalance)
            .where(DailyStockBalance.product_id == product.id)
            .where(DailyStockBalance.balance_date == day)
            .with_for_update()
        )
        snapshot = result.scalar_one_or_none()
        if snapshot is None:
            snapshot = DailyStockBalance(product_id=product.id, balance_date=day)
            self.db.add(snapshot)
        for name, value in values.items():
            setattr(snapshot, name, value)

        await self.db.flush()
        return snapshot

    async def calculate_daily_balance(self, product_id: uuid.UUID, day: date) -> DailyStockBalance:
        """Calculate and store the snapshot of one product for one day."""
        key = (self.tenant.client_code, product_id, day)
        for attempt in range(2):
            async with balance_locks.hold(key):
                product = await self.catalog.require_product(product_id)
                try:
                    snapshot = await self._calculate(product, day)
                    await self.db.commit()
                except IntegrityError as e:
                    # Another writer inserted the same (product, day) first
                    await self.db.rollback()
                    if attempt == 1:
                        raise DatabaseException(
                            f"Could not store balance for product {product_id} on {day}",
                            original_error=e,
                        )
                    continue
                except SQLAlchemyError:
                    await self.db.rollback()
                    raise
            logger.info(
                f"Balance for product {product_id} on {day}: "
                f"{snapshot.opening_quantity} -> {snapshot.closing_quantity}"
            )
            return snapshot

    # ===========================================
    # BATCH CALCULATION
    # ===========================================

    async def _products_for_day(
        self,
        day: date,
        product_ids: Optional[List[uuid.UUID]] = None,
    ) -> List[Product]:
        """Active products plus any product with ledger activity on the day."""
        if product_ids is not None:
            result = await self.db.execute(
                select(Product).where(Product.id.in_(product_ids)).order_by(Product.item_code)
            )
            return list(result.scalars().all())

        start, end = day_bounds(day)
        moved = (
            select(StockMovement.product_id)
            .where(StockMovement.movement_date >= start)
            .where(StockMovement.movement_date < end)
        )
        result = await self.db.execute(
            select(Product)
            .where(or_(Product.status == ProductStatus.ACTIVE, Product.id.in_(moved)))
            .order_by(Product.item_code)
        )
        return list(result.scalars().all())

    async def _run_day(
        self,
        day: date,
        product_ids: Optional[List[uuid.UUID]],
    ) -> Tuple[int, List[BalanceFailure]]:
        """
        Calculate all snapshots of one day and commit them together.
        Per-product domain errors are collected; the rest of the day continues.
        """
        for attempt in range(2):
            written = 0
            failures: List[BalanceFailure] = []
            requested = set(product_ids) if product_ids is not None else set()
            try:
                for product in await self._products_for_day(day, product_ids):
                    requested.discard(product.id)
                    key = (self.tenant.client_code, product.id, day)
                    try:
                        async with balance_locks.hold(key):
                            await self._calculate(product, day)
                        written += 1
                    except AppException as e:
                        summary = error_summary(e)
                        failures.append(BalanceFailure(product.id, day, summary["code"], summary["message"]))
                        logger.warning(f"Balance for product {product.id} on {day} failed: {e.message}")
                for missing in requested:
                    failures.append(BalanceFailure(missing, day, "PRODUCT_NOT_FOUND", f"Product with ID '{missing}' not found"))
                await self.db.commit()
                return written, failures
            except IntegrityError as e:
                await self.db.rollback()
                if attempt == 1:
                    raise DatabaseException(f"Could not store balances for {day}", original_error=e)
                logger.warning(f"Concurrent balance write on {day}, retrying day")

    async def calculate_daily_balances(self, day: date) -> BalanceRunReport:
        """Calculate every product's snapshot for one day."""
        report = BalanceRunReport(start_date=day, end_date=day)
        written, failures = await self._run_day(day, None)
        report.days_completed = 1
        report.snapshots_written = written
        report.failures = failures
        logger.info(f"Daily balances for {day}: {written} written, {len(failures)} failed")
        return report

    async def calculate_balance_range(
        self,
        product_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> List[DailyStockBalance]:
        """One product across a range, closing carried into the next opening."""
        self._check_range(start_date, end_date)
        await self.catalog.require_product(product_id)
        return [
            await self.calculate_daily_balance(product_id, day)
            for day in iter_days(start_date, end_date)
        ]

    async def process_balance_range(
        self,
        start_date: date,
        end_date: date,
        product_ids: Optional[List[uuid.UUID]] = None,
    ) -> BalanceRunReport:
        """
        Calculate snapshots day by day in chronological order.

        Each day is committed on its own. If a day cannot be stored the run
        stops and the report names the day to resume from.
        """
        self._check_range(start_date, end_date)
        report = BalanceRunReport(start_date=start_date, end_date=end_date)

        for day in iter_days(start_date, end_date):
            try:
                written, failures = await self._run_day(day, product_ids)
            except (SQLAlchemyError, DatabaseException) as e:
                await self.db.rollback()
                report.resume_from = day
                logger.error(f"Balance run stopped at {day}: {e}", exc_info=True)
                break
            report.days_completed += 1
            report.snapshots_written += written
            report.failures.extend(failures)

        logger.info(
            f"Balance run {start_date}..{end_date}: {report.days_completed} days, "
            f"{report.snapshots_written} snapshots, {len(report.failures)} failures"
        )
        return report

    async def recalculate_balances(
        self,
        start_date: date,
        end_date: date,
        product_ids: Optional[List[uuid.UUID]] = None,
    ) -> BalanceRunReport:
        """
        Re-derive every snapshot in the range from the ledger.

        Use after out-of-order or corrected ledger entries. Safe to re-run.
        """
        logger.info(f"Recalculating balances {start_date}..{end_date} for client {self.tenant.client_code}")
        return await self.process_balance_range(start_date, end_date, product_ids)

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_daily_balance(self, product_id: uuid.UUID, day: date) -> DailyStockBalance:
        """Stored snapshot, calculated on demand when missing."""
        result = await self.db.execute(
            select(DailyStockBalance)
            .where(DailyStockBalance.product_id == product_id)
            .where(DailyStockBalance.balance_date == day)
        )
        snapshot = result.scalar_one_or_none()
        if snapshot is not None:
            return snapshot
        return await self.calculate_daily_balance(product_id, day)

    async def get_daily_balances(
        self,
        filters: Optional[BalanceFilter] = None,
    ) -> Tuple[List[DailyStockBalance], int]:
        filters = filters or BalanceFilter()
        if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            raise InvalidDateRangeException(filters.start_date, filters.end_date)

        criteria = []
        if filters.start_date:
            criteria.append(DailyStockBalance.balance_date >= filters.start_date)
        if filters.end_date:
            criteria.append(DailyStockBalance.balance_date <= filters.end_date)
        if filters.product_id:
            criteria.append(DailyStockBalance.product_id == filters.product_id)
        if filters.branch_id:
            criteria.append(DailyStockBalance.branch_id == filters.branch_id)
        if filters.counter_id:
            criteria.append(DailyStockBalance.counter_id == filters.counter_id)
        if filters.category_id:
            criteria.append(DailyStockBalance.category_id == filters.category_id)

        total = (await self.db.execute(
            select(func.count(DailyStockBalance.id)).where(*criteria)
        )).scalar_one()

        page = max(filters.page, 1)
        result = await self.db.execute(
            select(DailyStockBalance)
            .where(*criteria)
            .order_by(DailyStockBalance.balance_date.desc(), DailyStockBalance.product_id)
            .offset((page - 1) * filters.page_size)
            .limit(filters.page_size)
        )
        return list(result.scalars().all()), total
