"""
StockLedger - Movement Service

Append-only ledger of inventory-affecting events (additions, sales,
returns, transfer legs, adjustments).
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.models.catalog import Product
from app.models.inventory import MovementType, StockMovement
from app.schemas.inventory import MovementCreate
from app.services.catalog_service import CatalogService
from app.tenancy import TenantContext
from app.utils.error_handling import (
    AppException,
    BulkLimitExceededException,
    InvalidDateRangeException,
    InvalidQuantityException,
    MovementNotFoundException,
    ValidationException,
    error_summary,
)

logger = logging.getLogger(__name__)

MONEY = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(MONEY, rounding=ROUND_HALF_UP)


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Half-open [day 00:00, next day 00:00) window."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def to_naive_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_movement_type(value: Any) -> MovementType:
    try:
        return MovementType(value)
    except ValueError:
        raise ValidationException(
            f"Unknown movement type: {value}",
            field="movement_type",
            details={"allowed": [t.value for t in MovementType]},
        )


@dataclass
class BulkEntryError:
    """A failed entry of a bulk request."""
    index: int
    reference: str
    code: str
    message: str


@dataclass
class BulkMovementResult:
    """Outcome of record_movements."""
    total_requested: int
    recorded: List[StockMovement] = field(default_factory=list)
    errors: List[BulkEntryError] = field(default_factory=list)

    @property
    def recorded_count(self) -> int:
        return len(self.recorded)

    @property
    def failed_count(self) -> int:
        return len(self.errors)


@dataclass
class FollowupOutcome:
    """Result of a best-effort bookkeeping write."""
    movement: Optional[StockMovement] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.movement is not None


@dataclass
class MovementFilter:
    """Filter for ledger queries. Dates are inclusive calendar days."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    product_id: Optional[uuid.UUID] = None
    tag_code: Optional[str] = None
    item_code: Optional[str] = None
    branch_id: Optional[uuid.UUID] = None
    counter_id: Optional[uuid.UUID] = None
    category_id: Optional[uuid.UUID] = None
    movement_type: Optional[MovementType] = None
    transfer_id: Optional[uuid.UUID] = None
    page: int = 1
    page_size: int = settings.default_page_size


@dataclass
class MovementTypeTotal:
    movement_type: str
    movement_count: int = 0
    quantity: int = 0
    value: Decimal = Decimal("0.00")


LedgerTotals = Dict[MovementType, MovementTypeTotal]


def net_totals(totals: LedgerTotals) -> Tuple[int, Decimal]:
    """Signed quantity and value of grouped ledger totals."""
    quantity = 0
    value = Decimal("0.00")
    for movement_type, bucket in totals.items():
        quantity += bucket.quantity * movement_type.balance_sign
        value += bucket.value * movement_type.balance_sign
    return quantity, quantize_money(value)


async def ledger_totals(db, *criteria) -> LedgerTotals:
    """
    Count, quantity and value per movement type for entries matching criteria.

    Every type is present in the result, with zeros when it has no entries.
    """
    result = await db.execute(
        select(
            StockMovement.movement_type,
            func.count(StockMovement.id),
            func.sum(StockMovement.quantity),
            func.sum(StockMovement.total_amount),
        )
        .where(*criteria)
        .group_by(StockMovement.movement_type)
    )
    totals = {t: MovementTypeTotal(movement_type=t.value) for t in MovementType}
    for movement_type, count, quantity, value in result.all():
        bucket = totals[MovementType(movement_type)]
        bucket.movement_count = count
        bucket.quantity = int(quantity or 0)
        bucket.value = quantize_money(Decimal(str(value or 0)))
    return totals


@dataclass
class MovementSummary:
    start_date: date
    end_date: date
    branch_id: Optional[uuid.UUID]
    counter_id: Optional[uuid.UUID]
    totals: List[MovementTypeTotal]
    net_quantity: int
    net_value: Decimal


class MovementService:
    """Records and queries stock movements for one tenant."""

    def __init__(self, tenant: TenantContext):
        self.tenant = tenant
        self.db = tenant.db
        self.catalog = CatalogService(tenant)

    # ===========================================
    # RECORDING
    # ===========================================

    async def _resolve_product(self, payload: MovementCreate) -> Product:
        if payload.product_id is not None:
            product = await self.catalog.require_product(payload.product_id)
            if payload.tag_code:
                tagged = await self.catalog.resolve_tag(payload.tag_code)
                if tagged.id != product.id:
                    raise ValidationException(
                        f"Tag '{payload.tag_code}' is not assigned to product {product.id}",
                        field="tag_code",
                    )
            return product
        if payload.tag_code:
            return await self.catalog.resolve_tag(payload.tag_code)
        raise ValidationException(
            "Either product_id or tag_code is required",
            field="product_id",
        )

    async def stage_movement(
        self,
        payload: MovementCreate,
        product: Optional[Product] = None,
    ) -> StockMovement:
        """
        Validate a movement and add it to the current transaction.

        Flushes but does not commit; the caller owns the transaction.
        """
        if product is None:
            product = await self._resolve_product(payload)
        if payload.quantity is None or payload.quantity <= 0:
            raise InvalidQuantityException(payload.quantity)
        movement_type = parse_movement_type(payload.movement_type)

        tag_code = payload.tag_code or await self.catalog.get_active_tag(product.id)
        unit_price = payload.unit_price if payload.unit_price is not None else product.mrp
        unit_price = quantize_money(unit_price)
        if payload.total_amount is not None:
            total_amount = quantize_money(payload.total_amount)
        else:
            total_amount = quantize_money(unit_price * payload.quantity)

        movement = StockMovement(
            product_id=product.id,
            tag_code=tag_code,
            movement_type=movement_type,
            quantity=payload.quantity,
            unit_price=unit_price,
            total_amount=total_amount,
            branch_id=payload.branch_id or product.branch_id,
            counter_id=payload.counter_id or product.counter_id,
            box_id=payload.box_id if payload.box_id is not None else product.box_id,
            category_id=payload.category_id or product.category_id,
            reference_number=payload.reference_number,
            reference_type=payload.reference_type,
            transfer_id=payload.transfer_id,
            remarks=payload.remarks,
            movement_date=to_naive_utc(payload.movement_date or datetime.utcnow()),
        )
        self.db.add(movement)
        await self.db.flush()
        return movement

    async def record_movement(self, payload: MovementCreate) -> StockMovement:
        """Validate, persist and commit one ledger entry."""
        try:
            movement = await self.stage_movement(payload)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        logger.info(
            f"Recorded {movement.movement_type.value} of {movement.quantity} "
            f"for product {movement.product_id} ({movement.total_amount})"
        )
        return movement

    async def record_movements(self, payloads: List[MovementCreate]) -> BulkMovementResult:
        """
        Record several movements, continuing past failures.

        Each entry is committed on its own; failures are reported per entry.
        """
        if len(payloads) > settings.max_bulk_items:
            raise BulkLimitExceededException(len(payloads), settings.max_bulk_items)

        result = BulkMovementResult(total_requested=len(payloads))
        recorded_ids: List[uuid.UUID] = []
        rolled_back = False

        for index, payload in enumerate(payloads):
            try:
                movement = await self.stage_movement(payload)
                await self.db.commit()
                recorded_ids.append(movement.id)
                result.recorded.append(movement)
            except (AppException, SQLAlchemyError) as e:
                if isinstance(e, SQLAlchemyError):
                    await self.db.rollback()
                    rolled_back = True
                summary = error_summary(e)
                result.errors.append(BulkEntryError(
                    index=index,
                    reference=payload.product_ref,
                    code=summary["code"],
                    message=summary["message"],
                ))
                logger.warning(f"Bulk movement entry {index} failed: {summary['message']}")

        if rolled_back and recorded_ids:
            # Rollback expired the already-committed entries
            rows = await self.db.execute(
                select(StockMovement).where(StockMovement.id.in_(recorded_ids))
            )
            by_id = {m.id: m for m in rows.scalars().all()}
            result.recorded = [by_id[i] for i in recorded_ids]

        logger.info(
            f"Bulk movements: {result.recorded_count} recorded, {result.failed_count} failed"
        )
        return result

    async def record_followup_movement(self, payload: MovementCreate) -> FollowupOutcome:
        """
        Record a bookkeeping movement after the primary change has committed.

        Failures are logged and returned, never raised.
        """
        try:
            movement = await self.record_movement(payload)
            return FollowupOutcome(movement=movement)
        except (AppException, SQLAlchemyError) as e:
            logger.warning(
                f"Follow-up {payload.movement_type} movement for {payload.product_ref} failed: {e}",
                exc_info=True,
            )
            return FollowupOutcome(error=error_summary(e))

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_movement(self, movement_id: uuid.UUID) -> StockMovement:
        movement = await self.db.get(StockMovement, movement_id)
        if not movement:
            raise MovementNotFoundException(movement_id)
        return movement

    def _criteria(self, filters: MovementFilter) -> list:
        if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            raise InvalidDateRangeException(filters.start_date, filters.end_date)
        criteria = []
        if filters.start_date:
            criteria.append(StockMovement.movement_date >= day_bounds(filters.start_date)[0])
        if filters.end_date:
            criteria.append(StockMovement.movement_date < day_bounds(filters.end_date)[1])
        if filters.product_id:
            criteria.append(StockMovement.product_id == filters.product_id)
        if filters.tag_code:
            criteria.append(StockMovement.tag_code == filters.tag_code)
        if filters.item_code:
            criteria.append(StockMovement.product_id.in_(
                select(Product.id).where(Product.item_code == filters.item_code)
            ))
        if filters.branch_id:
            criteria.append(StockMovement.branch_id == filters.branch_id)
        if filters.counter_id:
            criteria.append(StockMovement.counter_id == filters.counter_id)
        if filters.category_id:
            criteria.append(StockMovement.category_id == filters.category_id)
        if filters.movement_type:
            criteria.append(StockMovement.movement_type == parse_movement_type(filters.movement_type))
        if filters.transfer_id:
            criteria.append(StockMovement.transfer_id == filters.transfer_id)
        return criteria

    async def get_movements(self, filters: Optional[MovementFilter] = None) -> Tuple[List[StockMovement], int]:
        """Return one page of matching entries (newest first) and the total count."""
        filters = filters or MovementFilter()
        criteria = self._criteria(filters)

        count_result = await self.db.execute(
            select(func.count(StockMovement.id)).where(*criteria)
        )
        total = count_result.scalar_one()

        page = max(filters.page, 1)
        result = await self.db.execute(
            select(StockMovement)
            .where(*criteria)
            .order_by(StockMovement.movement_date.desc(), StockMovement.created_at.desc())
            .offset((page - 1) * filters.page_size)
            .limit(filters.page_size)
        )
        return list(result.scalars().all()), total

    async def summarize_movements(
        self,
        start_date: date,
        end_date: date,
        branch_id: Optional[uuid.UUID] = None,
        counter_id: Optional[uuid.UUID] = None,
    ) -> MovementSummary:
        """Per-type quantity and value totals for a date range."""
        if start_date > end_date:
            raise InvalidDateRangeException(start_date, end_date)

        criteria = self._criteria(MovementFilter(
            start_date=start_date,
            end_date=end_date,
            branch_id=branch_id,
            counter_id=counter_id,
        ))
        totals = await ledger_totals(self.db, *criteria)
        net_quantity, net_value = net_totals(totals)

        return MovementSummary(
            start_date=start_date,
            end_date=end_date,
            branch_id=branch_id,
            counter_id=counter_id,
            totals=list(totals.values()),
            net_quantity=net_quantity,
            net_value=net_value,
        )
