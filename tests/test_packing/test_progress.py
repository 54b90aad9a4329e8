"""
Test suite for progress reconstruction from the usage ledger.

Tests cover greedy pool allocation across units and line items, empty and
optional-only kits, optional components, retract rows and the summary values
of OrderProgress. Everything here is pure; no database is involved.
"""

import pytest

from kitpack.services.packing.progress import build_pool, count_packed_units, reconstruct_progress
from kitpack.services.packing.types import BomEntry, ComponentUsage, LineItem

BOX = 1
TAPE = 2
STICKER = 3
FILLER = 4


def usage(component_id: int, quantity: int = 1) -> ComponentUsage:
    return ComponentUsage(component_id=component_id, quantity=quantity)


@pytest.fixture
def gift_box_bom():
    """One box and two tape strips required, a sticker optional."""
    return [
        BomEntry(component_id=BOX, quantity_per_unit=1),
        BomEntry(component_id=TAPE, quantity_per_unit=2),
        BomEntry(component_id=STICKER, quantity_per_unit=1, optional=True),
    ]


# ============================================================================
# Pool Building
# ============================================================================


class TestBuildPool:
    """Test suite for summing ledger rows per component."""

    def test_sums_quantities_per_component(self):
        pool = build_pool([usage(BOX), usage(TAPE, 2), usage(BOX, 3)])

        assert pool == {BOX: 4, TAPE: 2}

    def test_retract_rows_cancel_consumption(self):
        pool = build_pool([usage(BOX, 2), usage(TAPE, 4), usage(BOX, -1), usage(TAPE, -2)])

        assert pool == {BOX: 1, TAPE: 2}

    def test_empty_ledger_gives_empty_pool(self):
        assert build_pool([]) == {}


# ============================================================================
# Unit Counting
# ============================================================================


class TestCountPackedUnits:
    """Test suite for greedy unit completion on one line item."""

    def test_empty_bom_completes_every_unit(self):
        pool = {}

        assert count_packed_units([], 3, pool) == 3
        assert pool == {}

    def test_stops_at_first_uncoverable_unit(self, gift_box_bom):
        # Enough boxes for three units but tape for one and a half
        pool = {BOX: 3, TAPE: 3}

        packed = count_packed_units(gift_box_bom, 3, pool)

        assert packed == 1
        assert pool == {BOX: 2, TAPE: 1}

    def test_never_exceeds_requested_quantity(self, gift_box_bom):
        pool = {BOX: 10, TAPE: 20}

        packed = count_packed_units(gift_box_bom, 2, pool)

        assert packed == 2
        assert pool == {BOX: 8, TAPE: 16}

    def test_optional_only_bom_completes_vacuously(self):
        bom = [BomEntry(component_id=STICKER, quantity_per_unit=1, optional=True)]

        assert count_packed_units(bom, 4, {}) == 4


# ============================================================================
# Order Reconstruction
# ============================================================================


class TestReconstructProgress:
    """Test suite for whole-order progress reconstruction."""

    def test_greedy_pool_depletion(self):
        """One usage of A packs one of two units; a second usage completes the line."""
        line_items = [LineItem(product_id=10, requested_quantity=2, product_name="Mug")]
        boms = {10: [BomEntry(component_id=BOX, quantity_per_unit=1)]}

        partial = reconstruct_progress(1, line_items, boms, [usage(BOX)])
        assert partial.line_items[0].packed_qty == 1
        assert not partial.line_items[0].is_complete
        assert partial.next_target_index == 0

        full = reconstruct_progress(1, line_items, boms, [usage(BOX), usage(BOX)])
        assert full.line_items[0].packed_qty == 2
        assert full.line_items[0].is_complete
        assert full.is_complete

    def test_cross_line_pooling_fills_lines_in_order(self):
        line_items = [
            LineItem(product_id=10, requested_quantity=2, product_name="Mug"),
            LineItem(product_id=11, requested_quantity=2, product_name="Bowl"),
        ]
        boms = {
            10: [BomEntry(component_id=BOX, quantity_per_unit=1)],
            11: [BomEntry(component_id=BOX, quantity_per_unit=1)],
        }

        progress = reconstruct_progress(1, line_items, boms, [usage(BOX), usage(BOX)])

        assert [item.packed_qty for item in progress.line_items] == [2, 0]
        assert progress.next_target_index == 1

        progress = reconstruct_progress(1, line_items, boms, [usage(BOX, 3)])

        assert [item.packed_qty for item in progress.line_items] == [2, 1]
        assert progress.percent_complete == pytest.approx(0.75)

    def test_optional_component_is_ignored(self, gift_box_bom):
        line_items = [LineItem(product_id=10, requested_quantity=1, product_name="Gift box")]
        boms = {10: gift_box_bom}

        without_sticker = reconstruct_progress(1, line_items, boms, [usage(BOX), usage(TAPE, 2)])
        with_stickers = reconstruct_progress(
            1, line_items, boms, [usage(BOX), usage(TAPE, 2), usage(STICKER, 5)]
        )
        only_stickers = reconstruct_progress(1, line_items, boms, [usage(STICKER, 5)])

        assert without_sticker.line_items[0].is_complete
        assert with_stickers.line_items[0].is_complete
        assert only_stickers.line_items[0].packed_qty == 0

    def test_empty_bom_line_is_complete_without_ledger(self):
        line_items = [LineItem(product_id=20, requested_quantity=1, product_name="Gift card")]

        progress = reconstruct_progress(1, line_items, {20: []}, [])

        assert progress.line_items[0].packed_qty == 1
        assert progress.is_complete
        assert progress.next_target_index is None
        assert progress.percent_complete == 1.0

    def test_missing_bom_counts_as_empty(self):
        line_items = [LineItem(product_id=99, requested_quantity=3, product_name="Unknown")]

        progress = reconstruct_progress(1, line_items, {}, [])

        assert progress.line_items[0].packed_qty == 3

    def test_no_line_items_reports_zero_percent(self):
        progress = reconstruct_progress(1, [], {}, [])

        assert progress.percent_complete == 0.0
        assert progress.next_target_index is None
        assert progress.line_items == ()

    def test_next_target_skips_complete_lines(self):
        line_items = [
            LineItem(product_id=20, requested_quantity=1, product_name="Gift card"),
            LineItem(product_id=10, requested_quantity=1, product_name="Mug"),
        ]
        boms = {20: [], 10: [BomEntry(component_id=BOX, quantity_per_unit=1)]}

        progress = reconstruct_progress(1, line_items, boms, [])

        assert progress.next_target_index == 1
        assert progress.total_packed == 1
        assert progress.total_requested == 2

    def test_reconstruction_is_idempotent(self, gift_box_bom):
        line_items = [LineItem(product_id=10, requested_quantity=3, product_name="Gift box")]
        boms = {10: gift_box_bom}
        ledger = [usage(BOX), usage(TAPE, 2), usage(BOX)]

        first = reconstruct_progress(1, line_items, boms, ledger)
        second = reconstruct_progress(1, line_items, boms, ledger)

        assert first == second
        assert ledger == [usage(BOX), usage(TAPE, 2), usage(BOX)]

    def test_packed_quantity_never_decreases_as_ledger_grows(self, gift_box_bom):
        # Lines without shared required components, ledger grown in interleaved order
        line_items = [
            LineItem(product_id=10, requested_quantity=3, product_name="Gift box"),
            LineItem(product_id=11, requested_quantity=2, product_name="Filler pack"),
        ]
        boms = {
            10: gift_box_bom,
            11: [BomEntry(component_id=FILLER, quantity_per_unit=2)],
        }
        appended = [
            usage(BOX),
            usage(FILLER),
            usage(TAPE),
            usage(STICKER),
            usage(FILLER),
            usage(TAPE),
            usage(BOX),
            usage(TAPE, 2),
            usage(FILLER, 2),
        ]

        ledger = []
        previous = [0, 0]
        for entry in appended:
            ledger.append(entry)
            progress = reconstruct_progress(1, line_items, boms, ledger)
            current = [item.packed_qty for item in progress.line_items]
            assert all(now >= before for now, before in zip(current, previous))
            previous = current

        assert previous == [2, 2]
