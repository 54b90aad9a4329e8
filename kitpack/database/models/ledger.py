"""
Usage ledger and stock adjustment audit models.

Both tables are append-only. The usage ledger is the sole source of truth for
what has been consumed for an order; stock adjustments record every change to
component stock made by packing or undo.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from kitpack.database.base import AppendOnlyModel
from kitpack.services.packing.enums import LedgerEntryType


class UsageLedgerEntry(AppendOnlyModel):
    """
    Consumption event for one component on one order.

    Rows are not attributed to a line item or unit. Retract rows store a
    negative ``quantity_used``.
    """

    __tablename__ = "usage_ledger_entries"

    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="Order the components were used for",
    )

    component_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("components.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Component used",
    )

    quantity_used: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Units used, negative for retractions",
    )

    entry_type: Mapped[LedgerEntryType] = mapped_column(
        SQLEnum(
            LedgerEntryType,
            name="ledger_entry_type",
            create_constraint=True,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=LedgerEntryType.CONSUME,
        comment="consume or retract",
    )

    packed_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Packer who recorded the row",
    )

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Timestamp when the row was appended",
    )

    __table_args__ = (
        Index("ix_usage_ledger_order_component", "order_id", "component_id"),
    )


class StockAdjustment(AppendOnlyModel):
    """Audit row for a change to a component's stock."""

    __tablename__ = "stock_adjustments"

    component_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("components.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Adjusted component",
    )

    quantity_change: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Signed change applied to current_stock",
    )

    reason: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Why the stock changed",
    )

    order_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        comment="Order the change was made for, if any",
    )

    adjusted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Timestamp of the adjustment",
    )
