"""
Value types exchanged between the packing store, the progress reconstructor
and the packing service.

All of them are frozen dataclasses: snapshots read from the store and results
handed back to callers are never mutated in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from kitpack.services.packing.enums import OrderStatus, RejectionReason, UndoStatus

if TYPE_CHECKING:
    from kitpack.services.packing.undo import PendingCompensation


@dataclass(frozen=True)
class BomEntry:
    """One kit row as seen by packing."""

    component_id: int
    quantity_per_unit: int
    optional: bool = False
    component_name: Optional[str] = None


@dataclass(frozen=True)
class ComponentUsage:
    """A quantity of one component, as appended to or read from the ledger."""

    component_id: int
    quantity: int


@dataclass(frozen=True)
class ComponentLevel:
    """Current stock of a component and its alert level."""

    component_id: int
    name: str
    current_stock: int
    min_stock_alert: int = 0


@dataclass(frozen=True)
class LineItem:
    product_id: int
    requested_quantity: int
    product_name: str
    sku: Optional[str] = None


@dataclass(frozen=True)
class OrderSnapshot:
    """Order with its line items in packing order."""

    id: int
    order_number: str
    status: OrderStatus
    line_items: tuple[LineItem, ...] = ()


@dataclass(frozen=True)
class LineItemProgress:
    index: int
    product_id: int
    product_name: str
    packed_qty: int
    requested_qty: int

    @property
    def is_complete(self) -> bool:
        return self.packed_qty >= self.requested_qty

    @property
    def remaining_qty(self) -> int:
        return max(0, self.requested_qty - self.packed_qty)


@dataclass(frozen=True)
class OrderProgress:
    """
    Reconstructed completion state of an order.

    Attributes:
        order_id: Order the progress belongs to
        line_items: Per line item progress, in order
        percent_complete: Packed units over requested units, 0.0 to 1.0
        next_target_index: First incomplete line item, None when all are packed
    """

    order_id: int
    line_items: tuple[LineItemProgress, ...]
    percent_complete: float
    next_target_index: Optional[int]

    @property
    def is_complete(self) -> bool:
        return self.next_target_index is None

    @property
    def total_packed(self) -> int:
        return sum(item.packed_qty for item in self.line_items)

    @property
    def total_requested(self) -> int:
        return sum(item.requested_qty for item in self.line_items)


@dataclass(frozen=True)
class Rejection:
    """
    Why a unit was not committed.

    Attributes:
        reason: Machine readable reason code
        message: Human readable explanation
        component_id: Blocking component for stock failures
        missing_component_ids: Required components left unchecked
        available: Stock on hand of the blocking component
        required: Stock the unit needed from the blocking component
    """

    reason: RejectionReason
    message: str
    component_id: Optional[int] = None
    component_name: Optional[str] = None
    missing_component_ids: tuple[int, ...] = ()
    available: Optional[int] = None
    required: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return self.reason.is_retryable


@dataclass(frozen=True)
class CommitResult:
    """
    Outcome of committing one unit.

    When committed, ``next_target_index`` is the line item to pack next
    (the same one while it still has units left) or None once the order is
    completed.
    """

    order_id: int
    line_index: int
    committed: bool
    rejection: Optional[Rejection] = None
    next_target_index: Optional[int] = None
    same_line_item: bool = False
    order_completed: bool = False
    progress: Optional[OrderProgress] = None
    compensation: Optional["PendingCompensation"] = None

    @classmethod
    def rejected(cls, order_id: int, line_index: int, rejection: Rejection) -> "CommitResult":
        return cls(
            order_id=order_id,
            line_index=line_index,
            committed=False,
            rejection=rejection,
        )


@dataclass(frozen=True)
class UndoResult:
    status: UndoStatus
    order_id: Optional[int] = None
    line_index: Optional[int] = None
    message: Optional[str] = None
    progress: Optional[OrderProgress] = None

    @property
    def succeeded(self) -> bool:
        return self.status == UndoStatus.SUCCESS


@dataclass(frozen=True)
class StockShortage:
    component_id: int
    component_name: str
    required: int
    available: int

    @property
    def missing(self) -> int:
        return self.required - self.available


@dataclass(frozen=True)
class StockCheck:
    """Components needed for every unpacked unit of an order versus stock on hand."""

    order_id: int
    requirements: dict[int, int] = field(default_factory=dict)
    shortages: tuple[StockShortage, ...] = ()

    @property
    def is_available(self) -> bool:
        return not self.shortages
