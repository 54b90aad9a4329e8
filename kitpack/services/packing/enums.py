"""Order status, ledger and packing outcome enums.

This module defines the order lifecycle used by the packing executor together
with the transition rules it enforces, the ledger row kinds, and the reason
codes returned when a unit cannot be committed or undone.
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions:
    - PENDING -> COMPLETED (last unit of the last line item packed)
    - COMPLETED -> PENDING (the completing unit was undone)
    """

    PENDING = "pending"
    COMPLETED = "completed"


class LedgerEntryType(str, Enum):
    """Kind of usage ledger row.

    CONSUME rows record components used by a packed unit. RETRACT rows carry
    the negated quantity of a consume row reversed by an undo, so summing a
    component's rows gives the same pool as deleting the reversed rows.
    """

    CONSUME = "consume"
    RETRACT = "retract"


class RejectionReason(str, Enum):
    """Why a unit was not committed."""

    ORDER_NOT_FOUND = "order_not_found"
    LINE_INDEX_OUT_OF_RANGE = "line_index_out_of_range"
    LINE_ITEM_COMPLETE = "line_item_complete"
    CHECKLIST_INCOMPLETE = "checklist_incomplete"
    INSUFFICIENT_STOCK = "insufficient_stock"
    PERSISTENCE_FAILURE = "persistence_failure"

    @property
    def is_retryable(self) -> bool:
        """Only storage failures can succeed on an identical retry."""
        return self == RejectionReason.PERSISTENCE_FAILURE


class UndoStatus(str, Enum):
    """Outcome of an undo request."""

    SUCCESS = "success"
    EXPIRED_OR_ABSENT = "expired_or_absent"
    FAILED = "failed"


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: {OrderStatus.PENDING},
}

STOCK_REASON_PACKING = "packing"
STOCK_REASON_UNDO = "undo packing"


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus
) -> bool:
    """Validate if order status transition is allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())

