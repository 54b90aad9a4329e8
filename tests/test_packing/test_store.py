"""
Test suite for the SQLAlchemy packing store.

Tests run against a throwaway SQLite database and cover kit resolution, the
guarded stock decrement, stock audit rows, ledger append and retraction,
order snapshots, status transitions and transaction rollback.
"""

import pytest

from kitpack.services.packing.enums import LedgerEntryType, OrderStatus
from kitpack.services.packing.store import (
    InsufficientStockError,
    OrderNotFoundError,
    PackingPersistenceError,
)
from kitpack.services.packing.types import BomEntry, ComponentUsage


# ============================================================================
# Kit Resolution
# ============================================================================


class TestResolveBom:
    """Test suite for reading product kits."""

    async def test_resolves_entries_in_kit_order(self, store, catalog):
        box = await catalog.component("Box")
        sticker = await catalog.component("Sticker")
        product = await catalog.product("Gift box", kit=[(box, 1), (sticker, 2, True)])

        bom = await store.resolve_bom(product)

        assert bom == [
            BomEntry(component_id=box, quantity_per_unit=1, optional=False, component_name="Box"),
            BomEntry(component_id=sticker, quantity_per_unit=2, optional=True, component_name="Sticker"),
        ]

    async def test_product_without_kit_has_empty_bom(self, store, catalog):
        product = await catalog.product("Gift card")

        assert await store.resolve_bom(product) == []

    async def test_resolve_boms_deduplicates_products(self, store, catalog):
        box = await catalog.component("Box")
        product = await catalog.product("Mug", kit=[(box, 1)])

        boms = await store.resolve_boms([product, product])

        assert list(boms) == [product]


# ============================================================================
# Stock
# ============================================================================


class TestComponentStock:
    """Test suite for guarded stock changes."""

    async def test_decrement_reduces_stock_and_audits(self, store, catalog):
        box = await catalog.component("Box", stock=5)

        async with store.transaction():
            remaining = await store.decrement_component_stock(box, 2, order_id=None)

        assert remaining == 3
        assert await catalog.stock_of(box) == 3
        adjustments = await catalog.adjustments(box)
        assert [(a.quantity_change, a.reason) for a in adjustments] == [(-2, "packing")]

    async def test_decrement_to_exactly_zero(self, store, catalog):
        box = await catalog.component("Box", stock=2)

        async with store.transaction():
            assert await store.decrement_component_stock(box, 2) == 0

    async def test_decrement_below_zero_is_rejected(self, store, catalog):
        box = await catalog.component("Box", stock=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            async with store.transaction():
                await store.decrement_component_stock(box, 2)

        assert exc_info.value.component_id == box
        assert exc_info.value.available == 1
        assert exc_info.value.requested == 2
        assert exc_info.value.component_name == "Box"
        assert await catalog.stock_of(box) == 1
        assert await catalog.adjustments(box) == []

    async def test_increment_restores_stock(self, store, catalog):
        box = await catalog.component("Box", stock=1)

        async with store.transaction():
            current = await store.increment_component_stock(box, 4)

        assert current == 5
        adjustments = await catalog.adjustments(box)
        assert [(a.quantity_change, a.reason) for a in adjustments] == [(4, "undo packing")]

    async def test_increment_unknown_component(self, store):
        with pytest.raises(PackingPersistenceError):
            await store.increment_component_stock(999, 1)

    async def test_unknown_component_has_zero_stock(self, store):
        assert await store.get_component_stock(999) == 0

    async def test_component_levels(self, store, catalog):
        box = await catalog.component("Box", stock=7, min_stock_alert=3)

        levels = await store.get_component_levels([box, 999])

        assert list(levels) == [box]
        assert levels[box].current_stock == 7
        assert levels[box].min_stock_alert == 3


# ============================================================================
# Usage Ledger
# ============================================================================


class TestUsageLedger:
    """Test suite for appending and retracting ledger rows."""

    async def test_append_and_read_back(self, store, catalog):
        box = await catalog.component("Box")
        tape = await catalog.component("Tape")
        product = await catalog.product("Mug", kit=[(box, 1)])
        order_id = await catalog.order([(product, 1)])

        async with store.transaction():
            await store.append_usage_ledger_entries(
                order_id,
                [ComponentUsage(box, 1), ComponentUsage(tape, 2)],
                packed_by="alex",
            )

        assert await store.get_usage_ledger_entries(order_id) == [
            ComponentUsage(box, 1),
            ComponentUsage(tape, 2),
        ]
        rows = await catalog.ledger_rows(order_id)
        assert all(row.entry_type == LedgerEntryType.CONSUME for row in rows)
        assert all(row.packed_by == "alex" for row in rows)

    async def test_retract_appends_negating_rows(self, store, catalog):
        box = await catalog.component("Box")
        product = await catalog.product("Mug", kit=[(box, 1)])
        order_id = await catalog.order([(product, 2)])

        async with store.transaction():
            await store.append_usage_ledger_entries(order_id, [ComponentUsage(box, 1)])
            await store.append_usage_ledger_entries(order_id, [ComponentUsage(box, 1)])
            await store.retract_usage_ledger_entries(order_id, [ComponentUsage(box, 1)])

        rows = await catalog.ledger_rows(order_id)
        assert [row.quantity_used for row in rows] == [1, 1, -1]
        assert rows[-1].entry_type == LedgerEntryType.RETRACT
        assert await catalog.ledger_total(order_id, box) == 1

    async def test_retract_more_than_held_is_refused(self, store, catalog):
        box = await catalog.component("Box")
        product = await catalog.product("Mug", kit=[(box, 1)])
        order_id = await catalog.order([(product, 1)])

        with pytest.raises(PackingPersistenceError) as exc_info:
            await store.retract_usage_ledger_entries(order_id, [ComponentUsage(box, 1)])

        assert exc_info.value.code == "LEDGER_MISMATCH"


# ============================================================================
# Orders
# ============================================================================


class TestOrders:
    """Test suite for order snapshots and status changes."""

    async def test_snapshot_keeps_line_order(self, store, catalog):
        mug = await catalog.product("Mug")
        bowl = await catalog.product("Bowl")
        order_id = await catalog.order([(bowl, 2), (mug, 1)])

        order = await store.get_order(order_id)

        assert order.status == OrderStatus.PENDING
        assert [(item.product_name, item.requested_quantity) for item in order.line_items] == [
            ("Bowl", 2),
            ("Mug", 1),
        ]

    async def test_unknown_order_is_none(self, store):
        assert await store.get_order(999) is None

    async def test_complete_and_reopen(self, store, catalog):
        mug = await catalog.product("Mug")
        order_id = await catalog.order([(mug, 1)])

        async with store.transaction():
            await store.set_order_status(order_id, OrderStatus.COMPLETED)

        completed = await catalog.order_row(order_id)
        assert completed.status == OrderStatus.COMPLETED
        assert completed.completed_at is not None

        async with store.transaction():
            await store.set_order_status(order_id, OrderStatus.PENDING)

        reopened = await catalog.order_row(order_id)
        assert reopened.status == OrderStatus.PENDING
        assert reopened.completed_at is None

    async def test_status_of_unknown_order(self, store):
        with pytest.raises(OrderNotFoundError):
            await store.set_order_status(999, OrderStatus.COMPLETED)


# ============================================================================
# Transactions
# ============================================================================


class TestTransaction:
    """Test suite for commit and rollback of a unit of work."""

    async def test_error_rolls_back_every_write(self, store, catalog):
        box = await catalog.component("Box", stock=5)
        product = await catalog.product("Mug", kit=[(box, 1)])
        order_id = await catalog.order([(product, 1)])

        with pytest.raises(RuntimeError):
            async with store.transaction():
                await store.decrement_component_stock(box, 1, order_id=order_id)
                await store.append_usage_ledger_entries(order_id, [ComponentUsage(box, 1)])
                raise RuntimeError("crash after both writes")

        assert await catalog.stock_of(box) == 5
        assert await catalog.ledger_rows(order_id) == []
        assert await catalog.adjustments(box) == []
