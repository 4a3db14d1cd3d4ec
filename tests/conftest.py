"""
StockLedger - Test Configuration

Pytest fixtures and configuration.
"""

from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.database import Base, create_session_factory
from app.models.catalog import Branch, Box, Category, Counter, Product
from app.schemas.inventory import MovementCreate
from app.services.catalog_service import CatalogService
from app.services.movement_service import MovementService
from app.tenancy import TenantContext, get_tenant_context
from main import app


TEST_CLIENT_CODE = "TEST"

# In-memory store shared by every connection of the test engine
test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = create_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def tenant(db_session: AsyncSession) -> TenantContext:
    return TenantContext(client_code=TEST_CLIENT_CODE, db=db_session)


@pytest_asyncio.fixture(scope="function")
async def client(tenant: TenantContext) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client bound to the test tenant's session."""

    async def override_get_tenant_context():
        yield tenant

    app.dependency_overrides[get_tenant_context] = override_get_tenant_context

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Client-Code": TEST_CLIENT_CODE, "X-User-Name": "tester"},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# CATALOG FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def catalog(tenant: TenantContext) -> CatalogService:
    return CatalogService(tenant)


@pytest_asyncio.fixture
async def branch_a(catalog: CatalogService) -> Branch:
    branch = await catalog.create_branch("Main Street")
    await catalog.db.commit()
    return branch


@pytest_asyncio.fixture
async def branch_b(catalog: CatalogService) -> Branch:
    branch = await catalog.create_branch("Harbour Mall")
    await catalog.db.commit()
    return branch


@pytest_asyncio.fixture
async def counter_a1(catalog: CatalogService, branch_a: Branch) -> Counter:
    counter = await catalog.create_counter(branch_a.id, "Counter 1")
    await catalog.db.commit()
    return counter


@pytest_asyncio.fixture
async def counter_a2(catalog: CatalogService, branch_a: Branch) -> Counter:
    counter = await catalog.create_counter(branch_a.id, "Counter 2")
    await catalog.db.commit()
    return counter


@pytest_asyncio.fixture
async def counter_b1(catalog: CatalogService, branch_b: Branch) -> Counter:
    counter = await catalog.create_counter(branch_b.id, "Counter 1")
    await catalog.db.commit()
    return counter


@pytest_asyncio.fixture
async def category(catalog: CatalogService) -> Category:
    category = await catalog.create_category("Rings")
    await catalog.db.commit()
    return category


@pytest_asyncio.fixture
async def box(catalog: CatalogService) -> Box:
    box = await catalog.create_box("Velvet tray 7", box_type="Tray")
    await catalog.db.commit()
    return box


@pytest_asyncio.fixture
async def product_factory(tenant: TenantContext, category: Category, branch_a: Branch, counter_a1: Counter):
    """
    Build products at Main Street / Counter 1.

    stock > 0 records an Addition of that quantity at the product's MRP.
    """
    catalog = CatalogService(tenant)
    movements = MovementService(tenant)

    async def make(
        item_code: str,
        mrp: Decimal = Decimal("100.00"),
        tag_code: str = None,
        stock: int = 1,
        added_at: datetime = None,
    ) -> Product:
        product = await catalog.create_product(
            item_code=item_code,
            category_id=category.id,
            branch_id=branch_a.id,
            counter_id=counter_a1.id,
            mrp=mrp,
        )
        if tag_code:
            await catalog.assign_tag(tag_code, product.id)
        await tenant.db.commit()
        if stock:
            await movements.record_movement(MovementCreate(
                product_id=product.id,
                movement_type="Addition",
                quantity=stock,
                reference_type="Purchase",
                movement_date=added_at,
            ))
        return product

    return make


@pytest_asyncio.fixture
async def product(product_factory) -> Product:
    """Item X: one ring in stock at Main Street / Counter 1, tag TAG-X."""
    return await product_factory("RING-X", tag_code="TAG-X")
