"""
Progress reconstruction from the usage ledger.

The ledger does not record which line item or unit consumed a component.
Completion is therefore rebuilt by pooling every usage of the order and
allocating it greedily: line items in order, units in order, each unit taking
its non-optional kit quantities from the pool until a unit cannot be covered.

Everything here is pure and synchronous. The ledger rows passed in are never
modified; each pass works on its own copy of the pool.
"""

from collections import defaultdict
from typing import Iterable, Mapping, Sequence

from kitpack.services.packing.types import (
    BomEntry,
    ComponentUsage,
    LineItem,
    LineItemProgress,
    OrderProgress,
)


def build_pool(entries: Iterable[ComponentUsage]) -> dict[int, int]:
    """
    Sum ledger quantities per component.

    Retract rows carry negative quantities, so a retracted usage cancels the
    usage it reverses.
    """
    pool: dict[int, int] = defaultdict(int)
    for entry in entries:
        pool[entry.component_id] += entry.quantity
    return dict(pool)


def count_packed_units(
    bom: Sequence[BomEntry],
    requested_quantity: int,
    pool: dict[int, int],
) -> int:
    """
    Complete as many units as the pool covers and deduct them from ``pool``.

    Args:
        bom: Kit of the line item's product
        requested_quantity: Units ordered
        pool: Working pool, mutated in place

    Returns:
        Number of fully packed units
    """
    if not bom:
        # A product without a kit consumes nothing and cannot be blocked
        return requested_quantity

    required = [entry for entry in bom if not entry.optional]
    packed = 0

    while packed < requested_quantity:
        if any(
            pool.get(entry.component_id, 0) < entry.quantity_per_unit
            for entry in required
        ):
            break
        for entry in required:
            pool[entry.component_id] = pool.get(entry.component_id, 0) - entry.quantity_per_unit
        packed += 1

    return packed


def reconstruct_progress(
    order_id: int,
    line_items: Sequence[LineItem],
    boms: Mapping[int, Sequence[BomEntry]],
    ledger: Iterable[ComponentUsage],
) -> OrderProgress:
    """
    Rebuild per line item completion for an order.

    Args:
        order_id: Order being reconstructed
        line_items: Line items in their fixed order
        boms: Kit per product id; a missing product counts as an empty kit
        ledger: Every usage ledger row of the order

    Returns:
        OrderProgress snapshot
    """
    pool = build_pool(ledger)
    progress: list[LineItemProgress] = []

    for index, item in enumerate(line_items):
        packed = count_packed_units(
            boms.get(item.product_id, ()),
            item.requested_quantity,
            pool,
        )
        progress.append(
            LineItemProgress(
                index=index,
                product_id=item.product_id,
                product_name=item.product_name,
                packed_qty=packed,
                requested_qty=item.requested_quantity,
            )
        )

    total_requested = sum(item.requested_qty for item in progress)
    total_packed = sum(item.packed_qty for item in progress)
    percent = total_packed / total_requested if total_requested > 0 else 0.0

    next_target = next(
        (item.index for item in progress if not item.is_complete),
        None,
    )

    return OrderProgress(
        order_id=order_id,
        line_items=tuple(progress),
        percent_complete=percent,
        next_target_index=next_target,
    )
