"""
Integration tests for the packing API endpoints.

Requests go through the ASGI app with the database dependency pointed at the
per-test SQLite database. Covers progress, begin, commit rejections mapped to
HTTP status codes, undo and the stock check.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from sqlalchemy.exc import SQLAlchemyError

from kitpack.services.packing.store import SqlAlchemyPackingStore

API = "/api/v1/packing"


@pytest.fixture
async def mug_order(catalog):
    """Order for two mugs, each packed with one box and an optional card."""
    box = await catalog.component("Box", stock=5)
    card = await catalog.component("Card", stock=5)
    mug = await catalog.product("Mug", kit=[(box, 1), (card, 1, True)])
    order_id = await catalog.order([(mug, 2)])
    return {"order_id": order_id, "box": box, "card": card}


class TestProgressEndpoint:
    """Test suite for GET progress."""

    async def test_progress(self, async_client, mug_order):
        response = await async_client.get(f"{API}/orders/{mug_order['order_id']}/progress")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["order_id"] == mug_order["order_id"]
        assert data["percent_complete"] == 0.0
        assert data["next_target_index"] == 0
        assert data["line_items"][0]["requested_qty"] == 2
        assert data["line_items"][0]["is_complete"] is False

    async def test_unknown_order(self, async_client):
        response = await async_client.get(f"{API}/orders/999/progress")

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestBeginEndpoint:
    """Test suite for beginning a unit."""

    async def test_begin_returns_checklist(self, async_client, mug_order):
        response = await async_client.post(f"{API}/orders/{mug_order['order_id']}/lines/0/begin")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["unit_number"] == 1
        assert [item["required"] for item in data["checklist"]] == [True, False]
        assert all(item["checked"] is False for item in data["checklist"])

    async def test_begin_unknown_line(self, async_client, mug_order):
        response = await async_client.post(f"{API}/orders/{mug_order['order_id']}/lines/3/begin")

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestCommitEndpoint:
    """Test suite for committing a unit over HTTP."""

    async def test_commit_success(self, async_client, catalog, mug_order):
        response = await async_client.post(
            f"{API}/orders/{mug_order['order_id']}/lines/0/commit",
            json={"checked": {str(mug_order["box"]): True}, "packed_by": "kim"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["committed"] is True
        assert data["same_line_item"] is True
        assert data["next_target_index"] == 0
        assert data["undo_window_seconds"] == pytest.approx(5.0)
        assert data["progress"]["line_items"][0]["packed_qty"] == 1
        assert await catalog.stock_of(mug_order["box"]) == 4
        assert await catalog.stock_of(mug_order["card"]) == 5

    async def test_checklist_incomplete_is_422(self, async_client, mug_order):
        response = await async_client.post(
            f"{API}/orders/{mug_order['order_id']}/lines/0/commit",
            json={"checked": {str(mug_order["card"]): True}},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        detail = response.json()["detail"]
        assert detail["reason"] == "checklist_incomplete"
        assert detail["missing_component_ids"] == [mug_order["box"]]

    async def test_insufficient_stock_is_409(self, async_client, catalog, mug_order):
        await catalog.set_stock(mug_order["box"], 0)

        response = await async_client.post(
            f"{API}/orders/{mug_order['order_id']}/lines/0/commit",
            json={"checked": {str(mug_order["box"]): True}},
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        detail = response.json()["detail"]
        assert detail["reason"] == "insufficient_stock"
        assert detail["component_id"] == mug_order["box"]
        assert detail["retryable"] is False

    async def test_unknown_order_is_404(self, async_client):
        response = await async_client.post(f"{API}/orders/999/lines/0/commit", json={"checked": {}})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_persistence_failure_is_503(self, async_client, catalog, mug_order):
        with patch.object(
            SqlAlchemyPackingStore,
            "append_usage_ledger_entries",
            AsyncMock(side_effect=SQLAlchemyError("disk full")),
        ):
            response = await async_client.post(
                f"{API}/orders/{mug_order['order_id']}/lines/0/commit",
                json={"checked": {str(mug_order["box"]): True}},
            )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["detail"]["retryable"] is True
        assert await catalog.stock_of(mug_order["box"]) == 5

    async def test_invalid_body_is_422(self, async_client, mug_order):
        response = await async_client.post(
            f"{API}/orders/{mug_order['order_id']}/lines/0/commit",
            json={"checked": {"not-an-id": True}},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] == "Validation Error"


class TestUndoEndpoint:
    """Test suite for undo over HTTP."""

    async def test_undo_after_commit(self, async_client, catalog, mug_order):
        await async_client.post(
            f"{API}/orders/{mug_order['order_id']}/lines/0/commit",
            json={"checked": {str(mug_order["box"]): True}},
        )

        response = await async_client.post(f"{API}/undo")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "success"
        assert data["progress"]["line_items"][0]["packed_qty"] == 0
        assert await catalog.stock_of(mug_order["box"]) == 5

    async def test_undo_with_nothing_pending_is_410(self, async_client):
        response = await async_client.post(f"{API}/undo")

        assert response.status_code == status.HTTP_410_GONE
        assert response.json()["detail"]["status"] == "expired_or_absent"

    async def test_undo_after_window_is_410(self, async_client, clock, mug_order):
        await async_client.post(
            f"{API}/orders/{mug_order['order_id']}/lines/0/commit",
            json={"checked": {str(mug_order["box"]): True}},
        )
        clock.advance(6)

        response = await async_client.post(f"{API}/undo")

        assert response.status_code == status.HTTP_410_GONE


class TestStockCheckEndpoint:
    """Test suite for the stock check."""

    async def test_stock_check(self, async_client, catalog, mug_order):
        await catalog.set_stock(mug_order["box"], 1)

        response = await async_client.get(f"{API}/orders/{mug_order['order_id']}/stock-check")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["is_available"] is False
        assert data["shortages"][0]["component_id"] == mug_order["box"]
        assert data["shortages"][0]["missing"] == 1

    async def test_unknown_order(self, async_client):
        response = await async_client.get(f"{API}/orders/999/stock-check")

        assert response.status_code == status.HTTP_404_NOT_FOUND
