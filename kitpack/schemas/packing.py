"""
Packing Pydantic schemas for API request/response validation.

Response models read straight from the packing service's result values with
``from_attributes``; computed properties such as ``is_complete`` are exposed
as plain fields.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from kitpack.services.packing.enums import RejectionReason, UndoStatus
from kitpack.services.packing.session import PackingSession


class CommitUnitRequest(BaseModel):
    """Checklist state submitted when a unit is packed."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    checked: dict[int, bool] = Field(
        default_factory=dict,
        description="Checked flag per component id",
    )
    packed_by: Optional[str] = Field(
        None,
        min_length=1,
        max_length=100,
        description="Packer name, defaults to the configured packer",
    )


class LineItemProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    index: int = Field(..., description="Position of the line item in the order")
    product_id: int
    product_name: str
    packed_qty: int = Field(..., description="Units reconstructed as packed")
    requested_qty: int = Field(..., description="Units ordered")
    remaining_qty: int
    is_complete: bool


class OrderProgressResponse(BaseModel):
    """Reconstructed progress of an order."""

    model_config = ConfigDict(from_attributes=True)

    order_id: int
    line_items: list[LineItemProgressResponse]
    percent_complete: float = Field(..., ge=0.0, le=1.0, description="Packed over requested units")
    next_target_index: Optional[int] = Field(
        None,
        description="First incomplete line item, null once everything is packed",
    )
    is_complete: bool
    total_packed: int
    total_requested: int


class ChecklistItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    component_id: int
    component_name: str
    quantity: int = Field(..., description="Units of the component per packed unit")
    required: bool
    checked: bool = False
    current_stock: int
    is_stock_short: bool = Field(..., description="Stock cannot cover this unit")
    needs_reorder: bool = Field(..., description="Stock after this unit is at or below the alert level")


class PackingSessionResponse(BaseModel):
    """Checklist for the unit about to be packed."""

    order_id: int
    line_index: int
    product_id: int
    product_name: str
    unit_number: int = Field(..., description="One-based number of the unit being packed")
    requested_qty: int
    checklist: list[ChecklistItemResponse]

    @classmethod
    def from_session(cls, session: PackingSession) -> "PackingSessionResponse":
        return cls(
            order_id=session.order_id,
            line_index=session.line_index,
            product_id=session.product_id,
            product_name=session.product_name,
            unit_number=session.unit_number,
            requested_qty=session.requested_qty,
            checklist=[
                ChecklistItemResponse(
                    component_id=item.component_id,
                    component_name=item.component_name,
                    quantity=item.quantity,
                    required=item.required,
                    checked=session.checked.get(item.component_id, False),
                    current_stock=item.current_stock,
                    is_stock_short=item.is_stock_short,
                    needs_reorder=item.needs_reorder,
                )
                for item in session.checklist
            ],
        )


class RejectionResponse(BaseModel):
    """Why a unit was not committed."""

    model_config = ConfigDict(from_attributes=True)

    reason: RejectionReason
    message: str
    component_id: Optional[int] = None
    component_name: Optional[str] = None
    missing_component_ids: list[int] = Field(default_factory=list)
    available: Optional[int] = None
    required: Optional[int] = None
    retryable: bool = False


class CommitUnitResponse(BaseModel):
    """Outcome of a committed unit."""

    model_config = ConfigDict(from_attributes=True)

    order_id: int
    line_index: int
    committed: bool
    next_target_index: Optional[int] = None
    same_line_item: bool = False
    order_completed: bool = False
    progress: Optional[OrderProgressResponse] = None
    undo_window_seconds: Optional[float] = Field(
        None,
        description="Seconds during which the unit can still be undone",
    )


class UndoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: UndoStatus
    order_id: Optional[int] = None
    line_index: Optional[int] = None
    message: Optional[str] = None
    progress: Optional[OrderProgressResponse] = None


class StockShortageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    component_id: int
    component_name: str
    required: int
    available: int
    missing: int


class StockCheckResponse(BaseModel):
    """Component requirements of the unpacked units of an order."""

    model_config = ConfigDict(from_attributes=True)

    order_id: int
    is_available: bool
    requirements: dict[int, int] = Field(
        default_factory=dict,
        description="Units needed per component id",
    )
    shortages: list[StockShortageResponse] = Field(default_factory=list)
