"""
StockLedger - Stock Service

Read-only point-in-time stock queries over the ledger and daily snapshots.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy import select

from app.models.inventory import DailyStockBalance, StockMovement
from app.services.catalog_service import CatalogService
from app.services.movement_service import day_bounds, ledger_totals, net_totals
from app.tenancy import TenantContext


class StockSource(str, Enum):
    """How a stock figure is derived."""
    LEDGER = "ledger"        # Signed sum of every ledger entry
    SNAPSHOT = "snapshot"    # Latest snapshot plus later ledger entries


class StockScope(str, Enum):
    PRODUCT = "product"
    BRANCH = "branch"
    COUNTER = "counter"
    CATEGORY = "category"


@dataclass
class StockLevel:
    """Quantity and value on hand for one scope."""
    scope: str
    scope_id: uuid.UUID
    quantity: int
    value: Decimal
    as_of: Optional[date]
    source: str
    product_id: Optional[uuid.UUID] = None


class StockService:
    """
    Current Stock Resolver.

    Branch, counter and category figures come from the ledger because
    snapshots are kept per product, not per location.
    """

    def __init__(self, tenant: TenantContext):
        self.tenant = tenant
        self.db = tenant.db
        self.catalog = CatalogService(tenant)

    async def _ledger_net(self, *criteria, as_of: Optional[date] = None) -> Tuple[int, Decimal]:
        if as_of is not None:
            criteria = criteria + (StockMovement.movement_date < day_bounds(as_of)[1],)
        return net_totals(await ledger_totals(self.db, *criteria))

    async def get_product_stock(
        self,
        product_id: uuid.UUID,
        as_of: Optional[date] = None,
        source: StockSource = StockSource.SNAPSHOT,
    ) -> StockLevel:
        """Quantity and value of one product, optionally at the end of a day."""
        source = StockSource(source)
        await self.catalog.require_product(product_id)

        if source == StockSource.LEDGER:
            quantity, value = await self._ledger_net(
                StockMovement.product_id == product_id, as_of=as_of,
            )
        else:
            query = select(DailyStockBalance).where(DailyStockBalance.product_id == product_id)
            if as_of is not None:
                query = query.where(DailyStockBalance.balance_date <= as_of)
            result = await self.db.execute(
                query.order_by(DailyStockBalance.balance_date.desc()).limit(1)
            )
            snapshot = result.scalar_one_or_none()

            criteria = (StockMovement.product_id == product_id,)
            base_quantity, base_value = 0, Decimal("0.00")
            if snapshot:
                base_quantity, base_value = snapshot.closing_quantity, snapshot.closing_value
                criteria += (StockMovement.movement_date >= day_bounds(snapshot.balance_date)[1],)
            later_quantity, later_value = await self._ledger_net(*criteria, as_of=as_of)
            quantity = base_quantity + later_quantity
            value = base_value + later_value

        return StockLevel(
            scope=StockScope.PRODUCT.value,
            scope_id=product_id,
            quantity=quantity,
            value=value,
            as_of=as_of,
            source=source.value,
        )

    async def get_branch_stock(self, branch_id: uuid.UUID, as_of: Optional[date] = None) -> StockLevel:
        quantity, value = await self._ledger_net(StockMovement.branch_id == branch_id, as_of=as_of)
        return StockLevel(StockScope.BRANCH.value, branch_id, quantity, value, as_of, StockSource.LEDGER.value)

    async def get_counter_stock(self, counter_id: uuid.UUID, as_of: Optional[date] = None) -> StockLevel:
        quantity, value = await self._ledger_net(StockMovement.counter_id == counter_id, as_of=as_of)
        return StockLevel(StockScope.COUNTER.value, counter_id, quantity, value, as_of, StockSource.LEDGER.value)

    async def get_category_stock(self, category_id: uuid.UUID, as_of: Optional[date] = None) -> StockLevel:
        quantity, value = await self._ledger_net(StockMovement.category_id == category_id, as_of=as_of)
        return StockLevel(StockScope.CATEGORY.value, category_id, quantity, value, as_of, StockSource.LEDGER.value)

    async def get_product_branch_stock(
        self,
        product_id: uuid.UUID,
        branch_id: uuid.UUID,
        as_of: Optional[date] = None,
    ) -> StockLevel:
        """Quantity and value of one product held at a branch."""
        await self.catalog.require_product(product_id)
        quantity, value = await self._ledger_net(
            StockMovement.product_id == product_id,
            StockMovement.branch_id == branch_id,
            as_of=as_of,
        )
        return StockLevel(
            StockScope.BRANCH.value, branch_id, quantity, value, as_of, StockSource.LEDGER.value,
            product_id=product_id,
        )

    async def get_product_counter_stock(
        self,
        product_id: uuid.UUID,
        counter_id: uuid.UUID,
        as_of: Optional[date] = None,
    ) -> StockLevel:
        """Quantity and value of one product held at a counter."""
        await self.catalog.require_product(product_id)
        quantity, value = await self._ledger_net(
            StockMovement.product_id == product_id,
            StockMovement.counter_id == counter_id,
            as_of=as_of,
        )
        return StockLevel(
            StockScope.COUNTER.value, counter_id, quantity, value, as_of, StockSource.LEDGER.value,
            product_id=product_id,
        )

    async def get_stock_level(
        self,
        scope: StockScope,
        scope_id: uuid.UUID,
        as_of: Optional[date] = None,
        source: StockSource = StockSource.SNAPSHOT,
    ) -> StockLevel:
        """Dispatch by scope. Location and category scopes always use the ledger."""
        scope = StockScope(scope)
        if scope == StockScope.PRODUCT:
            return await self.get_product_stock(scope_id, as_of=as_of, source=StockSource(source))
        if scope == StockScope.BRANCH:
            return await self.get_branch_stock(scope_id, as_of=as_of)
        if scope == StockScope.COUNTER:
            return await self.get_counter_stock(scope_id, as_of=as_of)
        return await self.get_category_stock(scope_id, as_of=as_of)

    async def available_quantity(
        self,
        product_id: uuid.UUID,
        branch_id: uuid.UUID,
        counter_id: uuid.UUID,
    ) -> int:
        """Ledger quantity of a product at one branch/counter."""
        quantity, _ = await self._ledger_net(
            StockMovement.product_id == product_id,
            StockMovement.branch_id == branch_id,
            StockMovement.counter_id == counter_id,
        )
        return quantity
