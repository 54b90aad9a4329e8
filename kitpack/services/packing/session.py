"""
Packing session: the checklist for the unit currently being packed.

A session is a plain in-memory value. Nothing is persisted until the packing
service commits the unit, so abandoning a session has no side effects.
"""

from dataclasses import dataclass, field
from typing import Iterable

from kitpack.services.packing.types import BomEntry, ComponentLevel


@dataclass(frozen=True)
class ChecklistItem:
    """
    One kit component to confirm for the current unit.

    Attributes:
        component_id: Component to pack
        component_name: Name shown to the packer
        quantity: Units of the component per packed unit
        required: False for optional kit entries
        current_stock: Stock on hand when the session began
        min_stock_alert: Alert level of the component
    """

    component_id: int
    component_name: str
    quantity: int
    required: bool
    current_stock: int = 0
    min_stock_alert: int = 0
    low_stock_margin: int = 0

    @property
    def is_stock_short(self) -> bool:
        """Stock cannot cover this unit."""
        return self.current_stock < self.quantity

    @property
    def needs_reorder(self) -> bool:
        """Stock left after this unit is at or below the alert level."""
        remaining = self.current_stock - self.quantity
        return remaining <= self.min_stock_alert + self.low_stock_margin


def build_checklist(
    bom: Iterable[BomEntry],
    levels: dict[int, ComponentLevel],
    low_stock_margin: int = 0,
) -> tuple[ChecklistItem, ...]:
    items = []
    for entry in bom:
        level = levels.get(entry.component_id)
        name = entry.component_name or (level.name if level else f"Component {entry.component_id}")
        items.append(
            ChecklistItem(
                component_id=entry.component_id,
                component_name=name,
                quantity=entry.quantity_per_unit,
                required=not entry.optional,
                current_stock=level.current_stock if level else 0,
                min_stock_alert=level.min_stock_alert if level else 0,
                low_stock_margin=low_stock_margin,
            )
        )
    return tuple(items)


@dataclass
class PackingSession:
    """
    Transient state for packing one unit of one line item.

    Attributes:
        order_id: Order being packed
        line_index: Line item being packed
        product_id: Product of the line item
        product_name: Product name shown to the packer
        unit_number: One-based number of the unit being packed
        requested_qty: Units ordered on the line item
        checklist: Kit components for the unit, in kit order
        checked: Checked flag per component id, all False initially
    """

    order_id: int
    line_index: int
    product_id: int
    product_name: str
    unit_number: int
    requested_qty: int
    checklist: tuple[ChecklistItem, ...] = ()
    checked: dict[int, bool] = field(default_factory=dict)

    def __post_init__(self):
        for item in self.checklist:
            self.checked.setdefault(item.component_id, False)

    def _require_known(self, component_id: int) -> None:
        if component_id not in self.checked:
            raise KeyError(f"Component {component_id} is not on this checklist")

    def toggle(self, component_id: int) -> bool:
        """Flip the checked flag of a component and return the new value."""
        self._require_known(component_id)
        self.checked[component_id] = not self.checked[component_id]
        return self.checked[component_id]

    def set_checked(self, component_id: int, value: bool = True) -> None:
        self._require_known(component_id)
        self.checked[component_id] = value

    def reset(self) -> None:
        """Uncheck everything for the next unit."""
        for component_id in self.checked:
            self.checked[component_id] = False

    def missing_required(self) -> list[ChecklistItem]:
        return [
            item
            for item in self.checklist
            if item.required and not self.checked.get(item.component_id, False)
        ]

    @property
    def is_ready(self) -> bool:
        """All required components are checked."""
        return not self.missing_required()
