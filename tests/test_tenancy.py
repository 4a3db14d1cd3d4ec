"""
StockLedger - Tenant Context Tests

Client code handling and per-client store isolation.
"""

import pytest
from sqlalchemy import func, select

from app.models.catalog import Branch
from app.services.catalog_service import CatalogService
from app.tenancy import TenantStoreResolver, normalize_client_code
from app.utils.error_handling import InvalidClientCodeException


class TestNormalizeClientCode:

    def test_upper_cases(self):
        assert normalize_client_code("acme-01") == "ACME-01"

    @pytest.mark.parametrize("code", [None, "", "x", "bad code", "../etc"])
    def test_rejects_malformed_codes(self, code):
        """Missing, too short or unsafe codes are rejected."""
        with pytest.raises(InvalidClientCodeException):
            normalize_client_code(code)


class TestTenantStoreResolver:
    """Each client gets its own store."""

    @pytest.fixture
    def resolver(self, tmp_path):
        return TenantStoreResolver(
            url_template=f"sqlite+aiosqlite:///{tmp_path}/store_{{client_code}}.db",
            auto_create_tables=True,
        )

    def test_store_url(self, resolver, tmp_path):
        assert resolver.store_url("Acme") == f"sqlite+aiosqlite:///{tmp_path}/store_acme.db"

    @pytest.mark.asyncio
    async def test_stores_are_isolated(self, resolver):
        """Data written for one client is invisible to another."""
        try:
            async with await resolver.open_context("acme") as acme:
                assert acme.client_code == "ACME"
                await CatalogService(acme).create_branch("Acme Central")
                await acme.db.commit()

            async with await resolver.open_context("ZENITH") as zenith:
                count = await zenith.db.execute(select(func.count(Branch.id)))
                assert count.scalar_one() == 0

            async with await resolver.open_context("ACME") as acme_again:
                count = await acme_again.db.execute(select(func.count(Branch.id)))
                assert count.scalar_one() == 1
        finally:
            await resolver.dispose()

    @pytest.mark.asyncio
    async def test_factory_is_cached(self, resolver):
        try:
            first = await resolver.session_factory("acme")
            second = await resolver.session_factory("ACME")

            assert first is second
        finally:
            await resolver.dispose()
