"""
StockLedger - API Integration Tests

Integration tests for REST API endpoints.
"""

from uuid import uuid4

import pytest
from httpx import AsyncClient


class TestHealthEndpoint:
    """Test health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test health check returns 200."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"


class TestMovementAPI:
    """Test movement ledger endpoints."""

    @pytest.mark.asyncio
    async def test_record_movement(self, client: AsyncClient, product):
        """Recording a movement returns the stored entry."""
        response = await client.post(
            "/api/v1/movements",
            json={
                "product_id": str(product.id),
                "movement_type": "Addition",
                "quantity": 2,
                "reference_type": "Purchase",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["movement_type"] == "Addition"
        assert data["quantity"] == 2
        assert data["total_amount"] == "200.00"
        assert data["tag_code"] == "TAG-X"

    @pytest.mark.asyncio
    async def test_zero_quantity_is_rejected(self, client: AsyncClient, product):
        """Validation failures use the standard error body."""
        response = await client.post(
            "/api/v1/movements",
            json={"product_id": str(product.id), "movement_type": "Sale", "quantity": 0},
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_QUANTITY"
        assert "timestamp" in detail

    @pytest.mark.asyncio
    async def test_unknown_movement(self, client: AsyncClient):
        response = await client.get(f"/api/v1/movements/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "MOVEMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_and_bulk(self, client: AsyncClient, product):
        """Bulk recording reports per-entry failures; the list filters by type."""
        bulk = await client.post(
            "/api/v1/movements/bulk",
            json={"movements": [
                {"product_id": str(product.id), "movement_type": "Adjustment"},
                {"product_id": str(product.id), "movement_type": "Shrinkage"},
            ]},
        )
        listing = await client.get(
            "/api/v1/movements",
            params={"product_id": str(product.id), "movement_type": "Adjustment"},
        )

        assert bulk.status_code == 200
        assert bulk.json()["recorded_count"] == 1
        assert bulk.json()["errors"][0]["index"] == 1
        assert listing.json()["total"] == 1


class TestTransferAPI:
    """Test stock transfer endpoints."""

    @pytest.mark.asyncio
    async def test_transfer_flow(self, client: AsyncClient, product, branch_b, counter_b1):
        """Create, approve and complete over HTTP."""
        created = await client.post(
            "/api/v1/transfers",
            json={
                "items": [{"tag_code": "TAG-X"}],
                "destination_branch_id": str(branch_b.id),
                "destination_counter_id": str(counter_b1.id),
                "reason": "Window display",
            },
        )
        assert created.status_code == 201
        transfer = created.json()
        assert transfer["status"] == "Pending"
        assert transfer["transfer_type"] == "Branch"
        assert transfer["requested_by"] == "tester"

        approved = await client.post(f"/api/v1/transfers/{transfer['id']}/approve", json={"remarks": "ok"})
        assert approved.json()["status"] == "InTransit"

        completed = await client.post(f"/api/v1/transfers/{transfer['id']}/complete")
        assert completed.status_code == 200
        assert completed.json()["status"] == "Completed"
        assert completed.json()["completed_by"] == "tester"

        legs = await client.get("/api/v1/movements", params={"transfer_id": transfer["id"]})
        assert sorted(m["movement_type"] for m in legs.json()["items"]) == ["TransferIn", "TransferOut"]

        stock = await client.get(f"/api/v1/stock/branches/{branch_b.id}")
        assert stock.json()["quantity"] == 1

    @pytest.mark.asyncio
    async def test_rejected_transfer_cannot_complete(self, client: AsyncClient, product, branch_b, counter_b1):
        """Closed transfers answer 409."""
        created = await client.post(
            "/api/v1/transfers",
            json={
                "items": [{"product_id": str(product.id)}],
                "destination_branch_id": str(branch_b.id),
                "destination_counter_id": str(counter_b1.id),
            },
        )
        transfer_id = created.json()["id"]

        rejected = await client.post(f"/api/v1/transfers/{transfer_id}/reject", json={"reason": "Not today"})
        response = await client.post(f"/api/v1/transfers/{transfer_id}/complete")

        assert rejected.json()["status"] == "Rejected"
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "TRANSFER_CLOSED"

    @pytest.mark.asyncio
    async def test_second_open_transfer_conflicts(self, client: AsyncClient, product, branch_b, counter_b1):
        body = {
            "items": [{"product_id": str(product.id)}],
            "destination_branch_id": str(branch_b.id),
            "destination_counter_id": str(counter_b1.id),
        }
        await client.post("/api/v1/transfers", json=body)

        response = await client.post("/api/v1/transfers", json=body)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "ITEM_RESERVED"

    @pytest.mark.asyncio
    async def test_list_by_status(self, client: AsyncClient, product, branch_b, counter_b1):
        await client.post(
            "/api/v1/transfers",
            json={
                "items": [{"product_id": str(product.id)}],
                "destination_branch_id": str(branch_b.id),
                "destination_counter_id": str(counter_b1.id),
            },
        )

        pending = await client.get("/api/v1/transfers", params={"status": "Pending"})
        completed = await client.get("/api/v1/transfers", params={"status": "Completed"})

        assert pending.json()["total"] == 1
        assert completed.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_validate_writes_nothing(self, client: AsyncClient, product, branch_b, counter_b1):
        """The dry run reports the outcome without creating a transfer."""
        body = {
            "items": [{"product_id": str(product.id), "quantity": 2}],
            "destination_branch_id": str(branch_b.id),
            "destination_counter_id": str(counter_b1.id),
        }

        refused = await client.post("/api/v1/transfers/validate", json=body)
        body["items"][0]["quantity"] = 1
        accepted = await client.post("/api/v1/transfers/validate", json=body)
        listing = await client.get("/api/v1/transfers")

        assert refused.status_code == 200
        assert refused.json()["is_valid"] is False
        assert refused.json()["code"] == "INSUFFICIENT_INVENTORY"
        assert accepted.json()["is_valid"] is True
        assert accepted.json()["transfer_type"] == "Branch"
        assert listing.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_unknown_transfer(self, client: AsyncClient):
        response = await client.get(f"/api/v1/transfers/{uuid4()}")

        assert response.status_code == 404


class TestBalanceAndStockAPI:
    """Test daily balance and stock level endpoints."""

    @pytest.mark.asyncio
    async def test_product_stock_and_balance(self, client: AsyncClient, product_factory):
        """Snapshot and ledger sources report the same stock."""
        item = await product_factory("BANGLE-B", stock=3, added_at="2026-03-10T10:00:00")

        balance = await client.get(f"/api/v1/products/{item.id}/balances/2026-03-10")
        ledger = await client.get(f"/api/v1/stock/products/{item.id}", params={"source": "ledger"})
        snapshot = await client.get(f"/api/v1/stock/products/{item.id}")

        assert balance.status_code == 200
        assert balance.json()["closing_quantity"] == 3
        assert balance.json()["closing_value"] == "300.00"
        assert ledger.json()["quantity"] == snapshot.json()["quantity"] == 3
        assert snapshot.json()["source"] == "snapshot"

    @pytest.mark.asyncio
    async def test_range_recalculation(self, client: AsyncClient, product):
        response = await client.post(
            "/api/v1/balances/recalculate",
            json={"start_date": "2026-03-01", "end_date": "2026-03-03", "product_ids": [str(product.id)]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["completed"] is True
        assert data["days_completed"] == 3
        assert data["snapshots_written"] == 3

    @pytest.mark.asyncio
    async def test_reversed_range(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/balances/process",
            json={"start_date": "2026-03-03", "end_date": "2026-03-01"},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_DATE_RANGE"


class TestSalesAPI:
    """Test sale and return endpoints."""

    @pytest.mark.asyncio
    async def test_sale_then_return(self, client: AsyncClient, product):
        sale = await client.post("/api/v1/sales", json={"tag_code": "TAG-X", "invoice_number": "INV-77"})
        again = await client.post("/api/v1/sales", json={"tag_code": "TAG-X", "invoice_number": "INV-78"})
        returned = await client.post("/api/v1/returns", json={"tag_code": "TAG-X", "reference_number": "RMA-1"})

        assert sale.status_code == 200
        assert sale.json()["product_status"] == "Sold"
        assert sale.json()["bookkeeping_recorded"] is True
        assert again.status_code == 409
        assert returned.json()["product_status"] == "Active"


class TestProductLocationStockAPI:
    """Test product-at-location stock endpoints."""

    @pytest.mark.asyncio
    async def test_product_at_branch_and_counter(self, client: AsyncClient, product, branch_a, counter_a1, branch_b):
        at_branch = await client.get(f"/api/v1/stock/products/{product.id}/branches/{branch_a.id}")
        at_counter = await client.get(f"/api/v1/stock/products/{product.id}/counters/{counter_a1.id}")
        elsewhere = await client.get(f"/api/v1/stock/products/{product.id}/branches/{branch_b.id}")

        assert at_branch.status_code == 200
        assert at_branch.json()["quantity"] == 1
        assert at_branch.json()["value"] == "100.00"
        assert at_branch.json()["product_id"] == str(product.id)
        assert at_counter.json()["quantity"] == 1
        assert elsewhere.json()["quantity"] == 0

    @pytest.mark.asyncio
    async def test_unknown_product(self, client: AsyncClient, branch_a):
        response = await client.get(f"/api/v1/stock/products/{uuid4()}/branches/{branch_a.id}")

        assert response.status_code == 404
