"""
StockLedger - FastAPI Dependencies

Shared dependencies for tenant resolution, per-tenant services and the
acting user.

Authentication happens upstream; the gateway forwards the client code and
the acting user's name as headers.
"""

from typing import Optional

from fastapi import Depends, Header

from app.services.balance_service import BalanceService
from app.services.catalog_service import CatalogService
from app.services.movement_service import MovementService
from app.services.sales_service import SalesService
from app.services.stock_service import StockService
from app.services.transfer_service import TransferService
from app.tenancy import TenantContext, get_tenant_context


async def get_actor(
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
) -> Optional[str]:
    """Name of the acting user, recorded on transfer workflow fields."""
    return x_user_name.strip() if x_user_name and x_user_name.strip() else None


def get_catalog_service(tenant: TenantContext = Depends(get_tenant_context)) -> CatalogService:
    return CatalogService(tenant)


def get_movement_service(tenant: TenantContext = Depends(get_tenant_context)) -> MovementService:
    return MovementService(tenant)


def get_balance_service(tenant: TenantContext = Depends(get_tenant_context)) -> BalanceService:
    return BalanceService(tenant)


def get_stock_service(tenant: TenantContext = Depends(get_tenant_context)) -> StockService:
    return StockService(tenant)


def get_transfer_service(tenant: TenantContext = Depends(get_tenant_context)) -> TransferService:
    return TransferService(tenant)


def get_sales_service(tenant: TenantContext = Depends(get_tenant_context)) -> SalesService:
    return SalesService(tenant)
